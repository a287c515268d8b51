from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from statquest.db import Database, Increment, run_with_conflict_retry
from statquest.db_converters import custom_stat_to_dict
from statquest.errors import AlreadyCompletedError, AuthorizationError
from statquest.leveling import FULL_RESOURCE, LevelResult, apply_experience
from statquest.models import CustomStat, Quest, UserProfile
from statquest.stats import (
    MAX_STAT_VALUE,
    add_clamped,
    compute_total_stats,
    effective_boost_ratio,
    normalize_stat_key,
    same_substat_name,
)
from statquest.time_utils import now_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatIncrease:
    stat: str
    boost: float
    new_value: float


@dataclass(frozen=True)
class SubstatChange:
    name: str
    parent_stat: str
    old_value: float
    new_value: float
    contribution_delta: float


@dataclass(frozen=True)
class RewardPlan:
    stat_deltas: dict[str, float]
    custom_stats: tuple[CustomStat, ...]
    substat_changes: tuple[SubstatChange, ...]
    experience_gained: int
    level: LevelResult
    projected_stats: dict[str, float]


@dataclass(frozen=True)
class RewardOutcome:
    quest_id: int
    leveled_up: bool
    level: int
    experience: int
    hp: float
    energy: float
    stat_increases: tuple[StatIncrease, ...]
    substat_changes: tuple[SubstatChange, ...]
    total_stats: dict[str, float]


def plan_quest_reward(quest: Quest, profile: UserProfile, grant_base: bool = True) -> RewardPlan:
    """Work out what completing ``quest`` does to ``profile`` without writing anything.

    Direct stat rewards and the parent share of every substat boost are summed
    per stat. With ``grant_base`` off, substat boosts only move the substat
    itself and the parent total stays derived.
    """
    deltas: dict[str, float] = defaultdict(float)
    for raw_key, boost in quest.rewards.stats.items():
        key = normalize_stat_key(raw_key)
        if key is None:
            logger.debug("quest %s: skipping reward for unknown stat %r", quest.id, raw_key)
            continue
        deltas[key] += boost

    custom_stats = list(profile.custom_stats)
    changes: list[SubstatChange] = []
    for name, boost in quest.substat_boosts.items():
        if boost <= 0:
            continue
        index = next((i for i, s in enumerate(custom_stats) if same_substat_name(s.name, name)), None)
        if index is None:
            logger.debug("quest %s: no substat named %r, boost skipped", quest.id, name)
            continue
        current = custom_stats[index]
        new_value = min(MAX_STAT_VALUE, current.value + boost)
        ratio = effective_boost_ratio(current)
        contribution_delta = new_value * ratio - current.value * ratio
        parent = normalize_stat_key(current.parent_stat)
        if grant_base and parent is not None:
            deltas[parent] += contribution_delta
        custom_stats[index] = CustomStat(
            name=current.name,
            value=new_value,
            parent_stat=current.parent_stat,
            icon=current.icon,
            boost_ratio=current.boost_ratio,
        )
        changes.append(
            SubstatChange(
                name=current.name,
                parent_stat=current.parent_stat,
                old_value=current.value,
                new_value=new_value,
                contribution_delta=contribution_delta,
            )
        )

    gained = max(0, quest.rewards.experience)
    return RewardPlan(
        stat_deltas=dict(deltas),
        custom_stats=tuple(custom_stats),
        substat_changes=tuple(changes),
        experience_gained=gained,
        level=apply_experience(profile.level, profile.experience, gained),
        projected_stats=add_clamped(profile.stats, deltas),
    )


def _reward_write(plan: RewardPlan) -> tuple[dict[str, Any], dict[str, Increment]]:
    fields: dict[str, Any] = {
        "experience": plan.level.experience,
        "level": plan.level.level,
    }
    if plan.level.leveled_up:
        fields["hp"] = FULL_RESOURCE
        fields["energy"] = FULL_RESOURCE
    if plan.substat_changes:
        fields["custom_stats"] = [custom_stat_to_dict(s) for s in plan.custom_stats]
    increments = {
        f"stats.{key}": Increment(delta, ceiling=MAX_STAT_VALUE)
        for key, delta in plan.stat_deltas.items()
        if delta
    }
    return fields, increments


def complete_quest(
    db: Database,
    quest_id: int,
    user_id: str,
    now: datetime | None = None,
    *,
    grant_base: bool = True,
    attempts: int = 3,
) -> RewardOutcome:
    quest = db.get_quest(quest_id)
    if quest.user_id != user_id:
        raise AuthorizationError(f"quest {quest_id} does not belong to user {user_id}")
    if quest.completed:
        raise AlreadyCompletedError(f"quest {quest_id} is already completed")
    completed_at = now or now_utc()

    def attempt() -> tuple[RewardPlan, UserProfile]:
        profile = db.get_user_record(user_id)
        plan = plan_quest_reward(quest, profile, grant_base=grant_base)
        fields, increments = _reward_write(plan)
        updated = db.commit_quest_reward(
            quest_id=quest.id,
            user_id=user_id,
            fields=fields,
            increments=increments,
            expected_version=profile.version,
            completed_at=completed_at,
        )
        return plan, updated

    plan, updated = run_with_conflict_retry(attempt, attempts=attempts, label=f"complete_quest:{quest_id}")

    if plan.level.leveled_up:
        logger.info("user=%s reached level %d (+%d)", user_id, plan.level.level, plan.level.levels_gained)
    logger.info(
        "quest completed user=%s quest=%s xp=+%d stats=%s",
        user_id,
        quest_id,
        plan.experience_gained,
        {k: round(v, 2) for k, v in plan.stat_deltas.items()},
    )
    return RewardOutcome(
        quest_id=quest.id,
        leveled_up=plan.level.leveled_up,
        level=updated.level,
        experience=updated.experience,
        hp=updated.hp,
        energy=updated.energy,
        stat_increases=tuple(
            StatIncrease(stat=key, boost=delta, new_value=updated.stats[key])
            for key, delta in plan.stat_deltas.items()
        ),
        substat_changes=plan.substat_changes,
        total_stats=compute_total_stats(updated.stats, updated.custom_stats),
    )
