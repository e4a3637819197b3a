"""
tests/test_cli.py — Command-line Entry Point Tests
===================================================
"""

from __future__ import annotations

import json

import pytest
from conftest import DAY_NOON, add_posts, add_user

from viwo import cli


@pytest.fixture
def wired(services, monkeypatch):
    monkeypatch.setattr(cli, "_bootstrap", lambda config_path: services)
    return services


class TestDistributeRewards:
    def test_prints_summary(self, wired, db_engine, capsys):
        add_user(db_engine, 1)
        add_posts(db_engine, 1, 3, at=DAY_NOON)

        assert cli.distribute_rewards_main(["--date", "2026-03-14"]) == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["success"] is True
        assert summary["date"] == "2026-03-14"
        assert summary["recipients"] == 1

    def test_skip_is_a_clean_exit(self, wired, capsys):
        assert cli.distribute_rewards_main(["--date", "2026-03-14"]) == 0
        assert json.loads(capsys.readouterr().out)["reason"] == "no active users"

    def test_bootstrap_failure_exits_1(self, monkeypatch):
        def broken(config_path):
            raise RuntimeError("DATABASE_URL is not set.")

        monkeypatch.setattr(cli, "_bootstrap", broken)
        assert cli.distribute_rewards_main([]) == 1

    def test_bad_date(self, wired):
        with pytest.raises(SystemExit):
            cli.distribute_rewards_main(["--date", "14/03/2026"])


class TestViwoCommand:
    def test_runs_job(self, wired, capsys):
        assert cli.main(["process-unlocks"]) == 0
        assert json.loads(capsys.readouterr().out) == {"stakesUnlocked": 0}

    def test_job_failure_exits_1(self, wired, monkeypatch):
        def boom(name, services):
            raise RuntimeError("lost connection")

        monkeypatch.setattr(cli, "run_job", boom)
        assert cli.main(["refresh-quality"]) == 1

    def test_command_required(self):
        with pytest.raises(SystemExit):
            cli.main([])
