from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

QUEST_TYPES = ("daily", "weekly", "achievement", "habit")
QUEST_DIFFICULTIES = ("easy", "medium", "hard", "epic")
BASIC_QUEST_STATUSES = ("available", "accepted", "completed", "failed", "expired")


@dataclass(frozen=True)
class CustomStat:
    name: str
    value: float
    parent_stat: str
    icon: str = "📈"
    boost_ratio: float | None = None


@dataclass(frozen=True)
class QuestRewards:
    experience: int
    stats: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Quest:
    id: int
    user_id: str
    title: str
    description: str
    quest_type: str
    difficulty: str
    completed: bool
    rewards: QuestRewards
    substat_boosts: dict[str, int]
    created_at: datetime
    completed_at: datetime | None


@dataclass(frozen=True)
class BasicQuest:
    id: str
    title: str
    description: str
    difficulty: str
    category: str
    time_to_accept_minutes: int
    time_to_complete_hours: int
    rewards: QuestRewards


@dataclass(frozen=True)
class ActiveBasicQuest(BasicQuest):
    available_until: int
    status: str = "available"
    accepted_at: int | None = None
    completed_at: int | None = None


@dataclass(frozen=True)
class UserProfile:
    user_id: str
    display_name: str
    email: str
    stats: dict[str, float]
    custom_stats: tuple[CustomStat, ...]
    experience: int
    level: int
    hp: float
    energy: float
    active_quests: tuple[ActiveBasicQuest, ...] | None
    cosmetics: dict[str, Any]
    version: int
    created_at: datetime
