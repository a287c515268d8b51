from __future__ import annotations

import random
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from statquest.config import Settings
from statquest.db import Database
from statquest.jobs_runner import run_basic_quest_ticks, run_job


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Europe/Oslo"))


def _settings(tmp_path: Path) -> Settings:
    return Settings(
        database_path=tmp_path / "app.db",
        quest_pool_path=tmp_path / "missing.yaml",
        scheduler_interval_seconds=300,
        scheduler_spawn_chance=0.0,
        write_retry_limit=3,
        substat_base_grants=True,
        api_token=None,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )


def test_tick_job_seeds_every_user(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    db.create_user_record("u1", "Ada", "ada@example.com", _dt(2026, 3, 1))
    db.create_user_record("u2", "Bob", "bob@example.com", _dt(2026, 3, 2))

    results = run_basic_quest_ticks(db, settings, rng=random.Random(9))

    assert set(results) == {"u1", "u2"}
    for user_id in ("u1", "u2"):
        assert len(db.get_user_record(user_id).active_quests or ()) == 3


def test_unknown_job_exits(tmp_path) -> None:
    settings = _settings(tmp_path)
    db = Database(settings.database_path)
    with pytest.raises(SystemExit):
        run_job("reminders", db, settings)
