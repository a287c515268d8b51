from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

from statquest.db_repo import BaseDatabase, Increment, QuestMixin, UserMixin
from statquest.errors import ConflictError
from statquest.models import CustomStat, Quest, UserProfile

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_WRITE_RETRY_LIMIT = 3

__all__ = [
    "Database",
    "Increment",
    "CustomStat",
    "Quest",
    "UserProfile",
    "run_with_conflict_retry",
]


class Database(UserMixin, QuestMixin, BaseDatabase):
    pass


def run_with_conflict_retry(
    operation: Callable[[], T],
    attempts: int = DEFAULT_WRITE_RETRY_LIMIT,
    label: str = "write",
) -> T:
    """Run a read-modify-write ``operation`` again while it hits ConflictError.

    Each attempt must re-read its snapshot. After ``attempts`` tries the last
    ConflictError propagates; nothing from the failed attempts was committed.
    """
    tries = max(1, attempts)
    for attempt in range(1, tries + 1):
        try:
            return operation()
        except ConflictError:
            if attempt >= tries:
                logger.error("%s: giving up after %d conflicting attempts", label, tries)
                raise
            logger.warning("%s: conflict on attempt %d/%d, retrying", label, attempt, tries)
    raise AssertionError("unreachable")
