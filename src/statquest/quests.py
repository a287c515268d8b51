from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from statquest.db import Database
from statquest.errors import ValidationError
from statquest.models import QUEST_DIFFICULTIES, QUEST_TYPES, Quest, QuestRewards
from statquest.stats import normalize_stat_key
from statquest.time_utils import now_utc

logger = logging.getLogger(__name__)

DIFFICULTY_EXPERIENCE = {
    "easy": 50,
    "medium": 100,
    "hard": 200,
    "epic": 400,
}


def _clean_boosts(raw: dict[str, Any] | None, what: str) -> dict[str, int]:
    cleaned: dict[str, int] = {}
    for key, value in (raw or {}).items():
        try:
            amount = int(value)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"{what} boost for {key!r} must be an integer") from exc
        if amount < 0:
            raise ValidationError(f"{what} boost for {key!r} must not be negative")
        if amount:
            cleaned[key] = amount
    return cleaned


def create_quest(
    db: Database,
    user_id: str,
    title: str,
    description: str = "",
    quest_type: str = "daily",
    difficulty: str = "easy",
    stat_boosts: dict[str, Any] | None = None,
    substat_boosts: dict[str, Any] | None = None,
    experience: int | None = None,
    now: datetime | None = None,
) -> Quest:
    clean_title = (title or "").strip()
    if not clean_title:
        raise ValidationError("quest title must not be empty")
    qtype = (quest_type or "").strip().lower()
    if qtype not in QUEST_TYPES:
        raise ValidationError(f"unknown quest type {quest_type!r}")
    diff = (difficulty or "").strip().lower()
    if diff not in QUEST_DIFFICULTIES:
        raise ValidationError(f"unknown difficulty {difficulty!r}")

    stats: dict[str, int] = {}
    for key, amount in _clean_boosts(stat_boosts, "stat").items():
        stat_key = normalize_stat_key(key)
        if stat_key is None:
            raise ValidationError(f"unknown stat {key!r}")
        stats[stat_key] = stats.get(stat_key, 0) + amount
    substats = {name.strip(): amount for name, amount in _clean_boosts(substat_boosts, "substat").items() if name.strip()}

    xp = DIFFICULTY_EXPERIENCE[diff] if experience is None else int(experience)
    if xp < 0:
        raise ValidationError("quest experience must not be negative")

    quest = db.insert_quest(
        user_id=user_id,
        title=clean_title,
        description=(description or "").strip(),
        quest_type=qtype,
        difficulty=diff,
        rewards=QuestRewards(experience=xp, stats=stats),
        substat_boosts=substats,
        created_at=now or now_utc(),
    )
    logger.info("quest created user=%s quest=%s type=%s difficulty=%s", user_id, quest.id, qtype, diff)
    return quest


def list_open_quests(db: Database, user_id: str, quest_type: str | None = None) -> list[Quest]:
    return db.list_quests_for_user(user_id, quest_type=quest_type, completed=False)
