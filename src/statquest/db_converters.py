from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any

from statquest.models import (
    BASIC_QUEST_STATUSES,
    ActiveBasicQuest,
    BasicQuest,
    CustomStat,
    Quest,
    QuestRewards,
    UserProfile,
)
from statquest.stats import STAT_KEYS


def _rewards_from_dict(raw: dict[str, Any] | None) -> QuestRewards:
    raw = raw or {}
    stats = raw.get("stats") or {}
    return QuestRewards(
        experience=int(raw.get("experience") or 0),
        stats={str(k): int(v) for k, v in stats.items() if v},
    )


def rewards_to_dict(rewards: QuestRewards) -> dict[str, Any]:
    return {"experience": rewards.experience, "stats": dict(rewards.stats)}


def custom_stat_from_dict(raw: dict[str, Any]) -> CustomStat:
    ratio = raw.get("boost_ratio")
    return CustomStat(
        name=str(raw["name"]),
        value=float(raw.get("value") or 0),
        parent_stat=str(raw.get("parent_stat") or ""),
        icon=str(raw.get("icon") or "📈"),
        boost_ratio=float(ratio) if ratio is not None else None,
    )


def custom_stat_to_dict(stat: CustomStat) -> dict[str, Any]:
    return {
        "name": stat.name,
        "value": stat.value,
        "parent_stat": stat.parent_stat,
        "icon": stat.icon,
        "boost_ratio": stat.boost_ratio,
    }


def basic_quest_from_dict(raw: dict[str, Any]) -> BasicQuest:
    return BasicQuest(
        id=str(raw["id"]),
        title=str(raw["title"]),
        description=str(raw.get("description") or ""),
        difficulty=str(raw.get("difficulty") or "easy"),
        category=str(raw.get("category") or "physical"),
        time_to_accept_minutes=int(raw.get("time_to_accept_minutes") or 120),
        time_to_complete_hours=int(raw.get("time_to_complete_hours") or 24),
        rewards=_rewards_from_dict(raw.get("rewards")),
    )


def _status_from_raw(raw: Any) -> str:
    status = str(raw or "available")
    # unrecognised states are swept like expired ones
    return status if status in BASIC_QUEST_STATUSES else "expired"


def active_quest_from_dict(raw: dict[str, Any]) -> ActiveBasicQuest:
    template = basic_quest_from_dict(raw)
    return ActiveBasicQuest(
        id=template.id,
        title=template.title,
        description=template.description,
        difficulty=template.difficulty,
        category=template.category,
        time_to_accept_minutes=template.time_to_accept_minutes,
        time_to_complete_hours=template.time_to_complete_hours,
        rewards=template.rewards,
        available_until=int(raw["available_until"]),
        status=_status_from_raw(raw.get("status")),
        accepted_at=int(raw["accepted_at"]) if raw.get("accepted_at") is not None else None,
        completed_at=int(raw["completed_at"]) if raw.get("completed_at") is not None else None,
    )


def active_quest_to_dict(quest: ActiveBasicQuest) -> dict[str, Any]:
    return {
        "id": quest.id,
        "title": quest.title,
        "description": quest.description,
        "difficulty": quest.difficulty,
        "category": quest.category,
        "time_to_accept_minutes": quest.time_to_accept_minutes,
        "time_to_complete_hours": quest.time_to_complete_hours,
        "rewards": rewards_to_dict(quest.rewards),
        "available_until": quest.available_until,
        "status": quest.status,
        "accepted_at": quest.accepted_at,
        "completed_at": quest.completed_at,
    }


def active_quests_to_list(quests: tuple[ActiveBasicQuest, ...] | list[ActiveBasicQuest]) -> list[dict[str, Any]]:
    return [active_quest_to_dict(q) for q in quests]


def new_user_document(display_name: str, email: str) -> dict[str, Any]:
    return {
        "display_name": display_name,
        "email": email,
        "stats": {key: 0 for key in STAT_KEYS},
        "custom_stats": [],
        "experience": 0,
        "level": 1,
        "hp": 100,
        "energy": 100,
        "active_quests": None,
        "cosmetics": {},
    }


def profile_from_document(user_id: str, doc: dict[str, Any], version: int, created_at: datetime) -> UserProfile:
    stats_raw = doc.get("stats") or {}
    active_raw = doc.get("active_quests")
    return UserProfile(
        user_id=user_id,
        display_name=str(doc.get("display_name") or ""),
        email=str(doc.get("email") or ""),
        stats={key: float(stats_raw.get(key) or 0) for key in STAT_KEYS},
        custom_stats=tuple(custom_stat_from_dict(s) for s in doc.get("custom_stats") or []),
        experience=int(doc.get("experience") or 0),
        level=int(doc.get("level") or 1),
        hp=float(doc.get("hp") if doc.get("hp") is not None else 100),
        energy=float(doc.get("energy") if doc.get("energy") is not None else 100),
        active_quests=tuple(active_quest_from_dict(q) for q in active_raw) if active_raw is not None else None,
        cosmetics=dict(doc.get("cosmetics") or {}),
        version=version,
        created_at=created_at,
    )


def _row_to_profile(row: sqlite3.Row) -> UserProfile:
    return profile_from_document(
        user_id=str(row["user_id"]),
        doc=json.loads(row["doc_json"]),
        version=int(row["version"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def _row_to_quest(row: sqlite3.Row) -> Quest:
    return Quest(
        id=int(row["id"]),
        user_id=str(row["user_id"]),
        title=row["title"],
        description=row["description"] or "",
        quest_type=row["quest_type"],
        difficulty=row["difficulty"],
        completed=bool(row["completed"]),
        rewards=_rewards_from_dict(json.loads(row["rewards_json"] or "{}")),
        substat_boosts={str(k): int(v) for k, v in json.loads(row["substat_boosts_json"] or "{}").items()},
        created_at=datetime.fromisoformat(row["created_at"]),
        completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
    )
