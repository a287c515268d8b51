from __future__ import annotations

import asyncio
import random
from datetime import datetime
from zoneinfo import ZoneInfo

from statquest.config import Settings
from statquest.db import Database
from statquest.models import UserProfile
from statquest.quest_pool import default_quest_pool
from statquest.scheduler import RandomQuestScheduler
from statquest.session import UserSession


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Europe/Oslo"))


def _session(tmp_path, seen: list[UserProfile]) -> UserSession:
    db = Database(tmp_path / "app.db")
    db.create_user_record("u1", "Ada", "ada@example.com", _dt(2026, 3, 1))
    scheduler = RandomQuestScheduler(db, "u1", default_quest_pool(), rng=random.Random(4), spawn_chance=0.0)
    return UserSession(db, scheduler, on_change=seen.append, interval_seconds=0.01)


def test_session_seeds_and_stops_on_close(tmp_path) -> None:
    seen: list[UserProfile] = []
    session = _session(tmp_path, seen)

    async def scenario() -> None:
        await session.start()
        assert session.running
        await asyncio.sleep(0.05)
        await session.close()

    asyncio.run(scenario())

    assert not session.running
    assert seen
    assert session.latest is not None
    assert len(session.latest.active_quests or ()) == 3

    # listener is detached once the session is closed
    count = len(seen)
    session.db.write_user_fields("u1", {"experience": 10})
    assert len(seen) == count


def test_session_as_context_manager(tmp_path) -> None:
    seen: list[UserProfile] = []
    session = _session(tmp_path, seen)

    async def scenario() -> None:
        async with session:
            assert session.running
            await asyncio.sleep(0.02)
        assert not session.running

    asyncio.run(scenario())
    assert session.db.get_user_record("u1").active_quests is not None


def test_session_from_settings_uses_configured_scheduler(tmp_path) -> None:
    settings = Settings(
        database_path=tmp_path / "app.db",
        quest_pool_path=tmp_path / "missing.yaml",
        scheduler_interval_seconds=42,
        scheduler_spawn_chance=0.5,
        write_retry_limit=7,
        substat_base_grants=True,
        api_token=None,
        api_host="127.0.0.1",
        api_port=8080,
        log_level="INFO",
    )
    db = Database(settings.database_path)
    db.create_user_record("u1", "Ada", "ada@example.com", _dt(2026, 3, 1))

    session = UserSession.from_settings(db, settings, "u1", default_quest_pool(), rng=random.Random(2))

    assert session.user_id == "u1"
    assert session.interval_seconds == 42
    assert session.scheduler.spawn_chance == 0.5
    assert session.scheduler.attempts == 7
    assert not session.running
