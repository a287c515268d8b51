from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from collections.abc import Callable, Sequence

from statquest.config import Settings
from statquest.db import Database
from statquest.models import BasicQuest, UserProfile
from statquest.scheduler import TICK_INTERVAL_SECONDS, RandomQuestScheduler

logger = logging.getLogger(__name__)


class UserSession:
    """Background work tied to one signed-in user: the quest timer and the record subscription.

    Both stop together in ``close()`` so no timer keeps writing after the user left.
    """

    def __init__(
        self,
        db: Database,
        scheduler: RandomQuestScheduler,
        on_change: Callable[[UserProfile], None] | None = None,
        interval_seconds: float = TICK_INTERVAL_SECONDS,
    ) -> None:
        self.db = db
        self.scheduler = scheduler
        self.on_change = on_change
        self.interval_seconds = interval_seconds
        self.latest: UserProfile | None = None
        self._task: asyncio.Task[None] | None = None
        self._unsubscribe: Callable[[], None] | None = None

    @classmethod
    def from_settings(
        cls,
        db: Database,
        settings: Settings,
        user_id: str,
        pool: Sequence[BasicQuest],
        on_change: Callable[[UserProfile], None] | None = None,
        rng: random.Random | None = None,
    ) -> UserSession:
        scheduler = RandomQuestScheduler(
            db,
            user_id,
            pool,
            rng=rng,
            spawn_chance=settings.scheduler_spawn_chance,
            attempts=settings.write_retry_limit,
        )
        return cls(db, scheduler, on_change=on_change, interval_seconds=settings.scheduler_interval_seconds)

    @property
    def user_id(self) -> str:
        return self.scheduler.user_id

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _handle_change(self, profile: UserProfile) -> None:
        self.latest = profile
        if self.on_change is not None:
            self.on_change(profile)

    async def start(self) -> None:
        if self.running:
            return
        self.latest = self.db.get_user_record(self.user_id)
        self._unsubscribe = self.db.subscribe_user_record(self.user_id, self._handle_change)
        self._task = asyncio.create_task(
            self.scheduler.run(self.interval_seconds),
            name=f"basic-quests:{self.user_id}",
        )
        logger.info("session started user=%s", self.user_id)

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("session closed user=%s", self.user_id)

    async def __aenter__(self) -> UserSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
