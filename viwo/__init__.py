"""
ViWo Rewards — VCN Token Reward Engine
=======================================
Turns a day of social engagement (posts, likes, comments, shares, reposts,
follows) into a bounded, abuse-adjusted VCN payout, and keeps the ledger
and staking books that payout lands in.

Package layout::

    viwo/
    ├── config.py          # YAML → immutable RewardsConfig
    ├── constants.py       # Decimal quantization, UTC/day helpers, tx sources
    ├── errors.py          # Typed business + batch errors
    ├── wiring.py          # Constructor composition of all services
    ├── cli.py             # distribute-rewards / viwo job commands
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + unit-of-work helpers
    │   └── models.py      # Collaborator tables + ledger/reward tables
    ├── engine/            # Pure calculation, no DB I/O
    │   ├── events.py      # ActivityEvent, ActivityCounts, base points
    │   ├── anti_bot.py    # Bot heuristics → penalty + flags
    │   ├── quality.py     # Content quality score + multiplier bucket
    │   ├── reputation.py  # Reputation sub-scores + clamp
    │   ├── points.py      # Time decay + final point combination
    │   └── allocation.py  # Proportional pool split under a per-user cap
    ├── services/          # DB-backed components
    │   ├── ledger_service.py
    │   ├── activity_service.py
    │   ├── anti_bot_service.py
    │   ├── quality_service.py
    │   ├── reputation_service.py
    │   ├── points_service.py
    │   ├── reward_service.py   # Daily distribution, leaderboard, history
    │   ├── staking_service.py
    │   ├── notifier.py         # credit_occurred / flag_raised events
    │   └── scheduler.py        # APScheduler cron wiring
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT auth + service wiring
        └── routes/        # vcoin, rewards, staking, admin endpoints
"""

__version__ = "0.1.0"
