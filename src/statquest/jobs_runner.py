from __future__ import annotations

import logging
import random

from statquest.config import Settings
from statquest.db import Database
from statquest.errors import StatQuestError
from statquest.quest_pool import load_quest_pool
from statquest.scheduler import RandomQuestScheduler, TickResult

logger = logging.getLogger(__name__)

JOB_NAMES = ("basic_quests",)


def run_basic_quest_ticks(
    db: Database,
    settings: Settings,
    rng: random.Random | None = None,
) -> dict[str, TickResult]:
    """One scheduler tick for every stored user; for deployments without live sessions."""
    pool = load_quest_pool(settings.quest_pool_path)
    shared_rng = rng or random.Random()
    results: dict[str, TickResult] = {}
    for user_id in db.list_user_ids():
        scheduler = RandomQuestScheduler(
            db,
            user_id,
            pool,
            rng=shared_rng,
            spawn_chance=settings.scheduler_spawn_chance,
            attempts=settings.write_retry_limit,
        )
        try:
            results[user_id] = scheduler.tick()
        except StatQuestError:
            logger.exception("basic quest tick failed user_id=%s", user_id)
    logger.info("basic quest tick completed: users=%s", len(results))
    return results


def run_job(job_name: str, db: Database, settings: Settings) -> None:
    if job_name == "basic_quests":
        run_basic_quest_ticks(db, settings)
    else:
        raise SystemExit(f"Unknown job '{job_name}'. Expected one of: {', '.join(JOB_NAMES)}")
