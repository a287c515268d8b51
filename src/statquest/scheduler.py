from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any

from statquest.db import Database, run_with_conflict_retry
from statquest.db_converters import active_quests_to_list
from statquest.errors import NotFoundError, ValidationError
from statquest.leveling import FULL_RESOURCE, LevelResult, apply_experience
from statquest.models import ActiveBasicQuest, BasicQuest, UserProfile
from statquest.stats import add_clamped
from statquest.time_utils import hours_ms, now_ms

logger = logging.getLogger(__name__)

MAX_AVAILABLE = 3
SEED_COUNT = 3
SPAWN_CHANCE = 0.02
TICK_INTERVAL_SECONDS = 5 * 60
ACCEPT_WINDOW_MS = hours_ms(2)
COMPLETE_WINDOW_MS = hours_ms(24)


@dataclass(frozen=True)
class TickResult:
    expired: tuple[ActiveBasicQuest, ...]
    spawned: ActiveBasicQuest | None
    active: tuple[ActiveBasicQuest, ...]


@dataclass(frozen=True)
class BasicQuestOutcome:
    quest: ActiveBasicQuest
    level: LevelResult
    stats: dict[str, float]


def instantiate(template: BasicQuest, now: int) -> ActiveBasicQuest:
    return ActiveBasicQuest(
        id=template.id,
        title=template.title,
        description=template.description,
        difficulty=template.difficulty,
        category=template.category,
        time_to_accept_minutes=template.time_to_accept_minutes,
        time_to_complete_hours=template.time_to_complete_hours,
        rewards=template.rewards,
        available_until=now + ACCEPT_WINDOW_MS,
        status="available",
    )


def sweep_expired(quests: Sequence[ActiveBasicQuest], now: int) -> tuple[list[ActiveBasicQuest], list[ActiveBasicQuest]]:
    """Expire ``available`` quests whose accept window has passed and drop them.

    Returns ``(kept, expired)``. Accepted quests are never expired here.
    """
    kept: list[ActiveBasicQuest] = []
    expired: list[ActiveBasicQuest] = []
    for quest in quests:
        if quest.status == "available" and now > quest.available_until:
            expired.append(replace(quest, status="expired"))
        elif quest.status == "expired":
            expired.append(quest)
        else:
            kept.append(quest)
    return kept, expired


def unused_templates(pool: Sequence[BasicQuest], active: Sequence[ActiveBasicQuest]) -> list[BasicQuest]:
    titles = {q.title for q in active}
    return [t for t in pool if t.title not in titles]


def seed_quests(pool: Sequence[BasicQuest], rng: random.Random, now: int, count: int = SEED_COUNT) -> list[ActiveBasicQuest]:
    distinct: dict[str, BasicQuest] = {}
    for template in pool:
        distinct.setdefault(template.title, template)
    templates = list(distinct.values())
    picked = rng.sample(templates, min(count, len(templates)))
    return [instantiate(t, now) for t in picked]


class RandomQuestScheduler:
    def __init__(
        self,
        db: Database,
        user_id: str,
        pool: Sequence[BasicQuest],
        rng: random.Random | None = None,
        spawn_chance: float = SPAWN_CHANCE,
        attempts: int = 3,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.db = db
        self.user_id = user_id
        self.pool = list(pool)
        self.rng = rng or random.Random()
        self.spawn_chance = spawn_chance
        self.attempts = attempts
        self.clock = clock

    def _write_quests(self, profile: UserProfile, quests: Sequence[ActiveBasicQuest], extra: dict[str, Any] | None = None) -> UserProfile:
        fields: dict[str, Any] = {"active_quests": active_quests_to_list(list(quests))}
        if extra:
            fields.update(extra)
        return self.db.write_user_fields(self.user_id, fields, expected_version=profile.version)

    def _retry(self, operation: Callable[[], Any], label: str) -> Any:
        return run_with_conflict_retry(operation, attempts=self.attempts, label=f"{label}:{self.user_id}")

    def ensure_seeded(self, now: int | None = None) -> tuple[ActiveBasicQuest, ...]:
        at = self.clock() if now is None else now

        def attempt() -> tuple[ActiveBasicQuest, ...]:
            profile = self.db.get_user_record(self.user_id)
            if profile.active_quests is not None:
                return profile.active_quests
            seeded = seed_quests(self.pool, self.rng, at)
            self._write_quests(profile, seeded)
            logger.info("seeded %d basic quests for user=%s", len(seeded), self.user_id)
            return tuple(seeded)

        return self._retry(attempt, "seed_quests")

    def tick(self, now: int | None = None) -> TickResult:
        at = self.clock() if now is None else now

        def attempt() -> TickResult:
            profile = self.db.get_user_record(self.user_id)
            if profile.active_quests is None:
                seeded = seed_quests(self.pool, self.rng, at)
                self._write_quests(profile, seeded)
                return TickResult(expired=(), spawned=None, active=tuple(seeded))

            kept, expired = sweep_expired(profile.active_quests, at)
            spawned: ActiveBasicQuest | None = None
            available = sum(1 for q in kept if q.status == "available")
            if available < MAX_AVAILABLE:
                if self.rng.random() < self.spawn_chance:
                    candidates = unused_templates(self.pool, kept)
                    if candidates:
                        spawned = instantiate(self.rng.choice(candidates), at)
                        kept.append(spawned)
                    else:
                        logger.debug("no unused quest templates for user=%s", self.user_id)
                else:
                    logger.debug("spawn roll failed for user=%s", self.user_id)

            if expired or spawned is not None:
                self._write_quests(profile, kept)
            return TickResult(expired=tuple(expired), spawned=spawned, active=tuple(kept))

        result: TickResult = self._retry(attempt, "quest_tick")
        if result.expired:
            logger.info("expired %d basic quests for user=%s", len(result.expired), self.user_id)
        if result.spawned is not None:
            logger.info("spawned basic quest %r for user=%s", result.spawned.title, self.user_id)
        return result

    def _find(self, profile: UserProfile, quest_id: str) -> int:
        for index, quest in enumerate(profile.active_quests or ()):
            if quest.id == quest_id:
                return index
        raise NotFoundError(f"basic quest {quest_id} is not active for user {self.user_id}")

    def accept_quest(self, quest_id: str, now: int | None = None) -> ActiveBasicQuest:
        at = self.clock() if now is None else now

        def attempt() -> ActiveBasicQuest:
            profile = self.db.get_user_record(self.user_id)
            index = self._find(profile, quest_id)
            quests = list(profile.active_quests or ())
            current = quests[index]
            if current.status != "available":
                raise ValidationError(f"basic quest {quest_id} is {current.status}, only available quests can be accepted")
            # After acceptance the deadline field holds the completion deadline.
            accepted = replace(current, status="accepted", accepted_at=at, available_until=at + COMPLETE_WINDOW_MS)
            quests[index] = accepted
            self._write_quests(profile, quests)
            return accepted

        accepted = self._retry(attempt, "accept_quest")
        logger.info("basic quest accepted user=%s quest=%s", self.user_id, quest_id)
        return accepted

    def complete_quest(self, quest_id: str, now: int | None = None) -> BasicQuestOutcome:
        at = self.clock() if now is None else now

        def attempt() -> BasicQuestOutcome:
            profile = self.db.get_user_record(self.user_id)
            index = self._find(profile, quest_id)
            quests = list(profile.active_quests or ())
            current = quests[index]
            if current.status != "accepted":
                raise ValidationError(f"basic quest {quest_id} is {current.status}, only accepted quests can be completed")
            completed = replace(current, status="completed", completed_at=at)
            quests[index] = completed

            level = apply_experience(profile.level, profile.experience, current.rewards.experience)
            stats = add_clamped(profile.stats, current.rewards.stats)
            extra: dict[str, Any] = {
                "experience": level.experience,
                "level": level.level,
                "stats": stats,
            }
            if level.leveled_up:
                extra["hp"] = FULL_RESOURCE
                extra["energy"] = FULL_RESOURCE
            self._write_quests(profile, quests, extra)
            return BasicQuestOutcome(quest=completed, level=level, stats=stats)

        outcome: BasicQuestOutcome = self._retry(attempt, "complete_basic_quest")
        logger.info(
            "basic quest completed user=%s quest=%s xp=+%d",
            self.user_id,
            quest_id,
            outcome.quest.rewards.experience,
        )
        return outcome

    async def run(self, interval_seconds: float = TICK_INTERVAL_SECONDS) -> None:
        """Seed, tick right away, then tick every ``interval_seconds`` until cancelled."""
        while True:
            try:
                self.ensure_seeded()
                self.tick()
            except Exception:
                logger.exception("basic quest tick failed for user=%s", self.user_id)
            await asyncio.sleep(interval_seconds)
