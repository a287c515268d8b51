from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from datetime import datetime

from statquest.db import Database, run_with_conflict_retry
from statquest.db_converters import custom_stat_to_dict
from statquest.errors import NotFoundError, ValidationError
from statquest.models import CustomStat
from statquest.stats import (
    DEFAULT_BOOST_RATIO,
    MAX_STAT_VALUE,
    STAT_KEYS,
    SUBSTAT_START_VALUE,
    normalize_stat_key,
    same_substat_name,
)

logger = logging.getLogger(__name__)

DEFAULT_SUBSTAT_ICON = "📈"


def validate_boost_ratio(raw: float | None) -> float:
    if raw is None:
        return DEFAULT_BOOST_RATIO
    try:
        ratio = float(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"boost ratio must be a number, got {raw!r}") from exc
    if math.isnan(ratio) or ratio <= 0 or ratio > 1:
        raise ValidationError(f"boost ratio must be in (0, 1], got {ratio}")
    return ratio


def _validate_parent(parent_stat: str) -> str:
    parent = normalize_stat_key(parent_stat)
    if parent is None:
        raise ValidationError(f"unknown parent stat {parent_stat!r}; expected one of {', '.join(STAT_KEYS)}")
    return parent


def _serialize(custom_stats: Iterable[CustomStat]) -> list[dict]:
    return [custom_stat_to_dict(s) for s in custom_stats]


def add_substat(
    db: Database,
    user_id: str,
    name: str,
    parent_stat: str,
    icon: str | None = DEFAULT_SUBSTAT_ICON,
    boost_ratio: float | None = DEFAULT_BOOST_RATIO,
    *,
    grant_base: bool = True,
    attempts: int = 3,
    now: datetime | None = None,
) -> CustomStat:
    """Create a substat starting at 10 and, with ``grant_base``, give its parent a one-time bump.

    The bump is ``10 * boost_ratio`` added to the stored base stat (capped at
    100) and lands in the same write as the new substat.
    """
    clean_name = (name or "").strip()
    if not clean_name:
        raise ValidationError("substat name must not be empty")
    parent = _validate_parent(parent_stat)
    ratio = validate_boost_ratio(boost_ratio)
    stat = CustomStat(
        name=clean_name,
        value=float(SUBSTAT_START_VALUE),
        parent_stat=parent,
        icon=(icon or "").strip() or DEFAULT_SUBSTAT_ICON,
        boost_ratio=ratio,
    )

    def attempt() -> CustomStat:
        profile = db.get_user_record(user_id)
        if any(same_substat_name(existing.name, clean_name) for existing in profile.custom_stats):
            raise ValidationError(f"substat {clean_name!r} already exists")
        fields: dict = {"custom_stats": _serialize(profile.custom_stats + (stat,))}
        if grant_base:
            initial = SUBSTAT_START_VALUE * ratio
            fields[f"stats.{parent}"] = min(MAX_STAT_VALUE, profile.stats[parent] + initial)
        db.write_user_fields(user_id, fields, expected_version=profile.version, now=now)
        return stat

    created = run_with_conflict_retry(attempt, attempts=attempts, label=f"add_substat:{user_id}")
    logger.info("substat created user=%s name=%s parent=%s ratio=%.2f", user_id, clean_name, parent, ratio)
    return created


def delete_substat(
    db: Database,
    user_id: str,
    name: str,
    parent_stat: str,
    *,
    attempts: int = 3,
    now: datetime | None = None,
) -> None:
    # The parent's stored base keeps whatever it was granted at creation.
    parent = normalize_stat_key(parent_stat)

    def attempt() -> None:
        profile = db.get_user_record(user_id)
        remaining = tuple(
            s
            for s in profile.custom_stats
            if not (same_substat_name(s.name, name) and normalize_stat_key(s.parent_stat) == parent)
        )
        if parent is None or len(remaining) == len(profile.custom_stats):
            raise NotFoundError(f"substat {name!r} under {parent_stat!r} not found")
        db.write_user_fields(
            user_id,
            {"custom_stats": _serialize(remaining)},
            expected_version=profile.version,
            now=now,
        )

    run_with_conflict_retry(attempt, attempts=attempts, label=f"delete_substat:{user_id}")
    logger.info("substat deleted user=%s name=%s parent=%s", user_id, name, parent)


def update_substat_value(
    db: Database,
    user_id: str,
    name: str,
    new_value: float,
    *,
    attempts: int = 3,
    now: datetime | None = None,
) -> CustomStat:
    try:
        raw = float(new_value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"substat value must be a number, got {new_value!r}") from exc
    if math.isnan(raw):
        raise ValidationError("substat value must be a number, got NaN")
    value = max(0.0, min(MAX_STAT_VALUE, raw))

    def attempt() -> CustomStat:
        profile = db.get_user_record(user_id)
        updated: CustomStat | None = None
        custom_stats: list[CustomStat] = []
        for s in profile.custom_stats:
            if updated is None and same_substat_name(s.name, name):
                updated = CustomStat(
                    name=s.name,
                    value=value,
                    parent_stat=s.parent_stat,
                    icon=s.icon,
                    boost_ratio=s.boost_ratio,
                )
                custom_stats.append(updated)
            else:
                custom_stats.append(s)
        if updated is None:
            raise NotFoundError(f"substat {name!r} not found")
        db.write_user_fields(
            user_id,
            {"custom_stats": _serialize(custom_stats)},
            expected_version=profile.version,
            now=now,
        )
        return updated

    return run_with_conflict_retry(attempt, attempts=attempts, label=f"update_substat:{user_id}")


def group_substats_by_parent(custom_stats: Iterable[CustomStat]) -> dict[str, list[CustomStat]]:
    grouped: dict[str, list[CustomStat]] = {key: [] for key in STAT_KEYS}
    for s in custom_stats:
        parent = normalize_stat_key(s.parent_stat)
        if parent is not None:
            grouped[parent].append(s)
    return grouped
