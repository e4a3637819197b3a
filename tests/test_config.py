"""
tests/test_config.py — YAML Configuration Tests
================================================
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from viwo.config import DEFAULT_ACTIVITY_POINTS, RewardsConfig, load_config


@pytest.fixture(autouse=True)
def _no_env_config(monkeypatch):
    monkeypatch.delenv("VIWO_CONFIG", raising=False)


def _write(tmp_path, text: str):
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_pool_and_cap(self):
        cfg = RewardsConfig()
        assert cfg.daily_pool == Decimal("155556")
        assert cfg.per_user_cap == Decimal("1666.66666666")

    def test_missing_default_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_config() == RewardsConfig()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_env_path_is_explicit(self, tmp_path, monkeypatch):
        monkeypatch.setenv("VIWO_CONFIG", str(tmp_path / "nope.yaml"))
        with pytest.raises(FileNotFoundError):
            load_config()

    @pytest.mark.parametrize(
        ("lock_days", "apy"),
        [(29, "0"), (30, "3.0"), (89, "3.0"), (90, "5.0"), (180, "8.0"), (365, "12.0"), (1000, "12.0")],
    )
    def test_apy_for(self, lock_days, apy):
        assert RewardsConfig().apy_for(lock_days) == Decimal(apy)


class TestYamlOverrides:
    def test_scalars_are_coerced(self, tmp_path):
        cfg = load_config(_write(tmp_path, "vcn_price_usd: 0.05\nmin_points: 20\ncap_policy: redistribute\n"))
        assert cfg.vcn_price_usd == Decimal("0.05")
        assert cfg.per_user_cap == Decimal("1000")
        assert cfg.min_points == 20
        assert cfg.cap_policy == "redistribute"

    def test_mappings_merge_over_defaults(self, tmp_path):
        cfg = load_config(_write(tmp_path, "activity_points:\n  LIKE: 2\n"))
        assert cfg.activity_points["LIKE"] == 2
        assert cfg.activity_points["TEXT_POST"] == DEFAULT_ACTIVITY_POINTS["TEXT_POST"]

    def test_apy_table(self, tmp_path):
        cfg = load_config(_write(tmp_path, "apy_table:\n  60: 4.5\n  400: 15\n"))
        assert cfg.apy_table == ((400, Decimal("15")), (60, Decimal("4.5")))
        assert cfg.apy_for(90) == Decimal("4.5")
        assert cfg.apy_for(30) == Decimal(0)

    def test_empty_file(self, tmp_path):
        assert load_config(_write(tmp_path, "")) == RewardsConfig()

    def test_unknown_key(self, tmp_path):
        with pytest.raises(KeyError, match="daily_pool_size"):
            load_config(_write(tmp_path, "daily_pool_size: 10\n"))

    def test_mapping_type_checked(self, tmp_path):
        with pytest.raises(TypeError):
            load_config(_write(tmp_path, "daily_caps: 5\n"))


class TestValidation:
    def test_cap_policy(self):
        with pytest.raises(ValueError, match="cap_policy"):
            RewardsConfig(cap_policy="spill")

    def test_fee_split_must_sum_to_one(self):
        with pytest.raises(ValueError, match="sum to 1"):
            RewardsConfig(burn_rate=Decimal("0.5"))

    def test_price_positive(self):
        with pytest.raises(ValueError):
            RewardsConfig(vcn_price_usd=Decimal(0))

    def test_retry_attempts(self):
        with pytest.raises(ValueError):
            RewardsConfig(user_retry_attempts=0)
