from __future__ import annotations

import math
from collections.abc import Iterable, Mapping

from statquest.models import CustomStat

STAT_KEYS = ("physical", "mental", "creativity", "spiritual", "social", "knowledge")

MIN_STAT_VALUE = 0.0
MAX_STAT_VALUE = 100.0

# Applied wherever a substat carries no ratio of its own.
DEFAULT_BOOST_RATIO = 0.1
SUBSTAT_START_VALUE = 10


def empty_stats() -> dict[str, float]:
    return {key: 0.0 for key in STAT_KEYS}


def normalize_stat_key(raw: str | None) -> str | None:
    if raw is None:
        return None
    key = str(raw).strip().lower()
    return key if key in STAT_KEYS else None


def same_substat_name(a: str, b: str) -> bool:
    """Substat names compare trimmed and case-insensitively everywhere."""
    return a.strip().casefold() == b.strip().casefold()


def clamp_stat(value: float) -> float:
    return max(MIN_STAT_VALUE, min(MAX_STAT_VALUE, float(value)))


def effective_boost_ratio(stat: CustomStat) -> float:
    if stat.boost_ratio is None:
        return DEFAULT_BOOST_RATIO
    return float(stat.boost_ratio)


def substat_contribution(stat: CustomStat) -> float:
    return float(stat.value) * effective_boost_ratio(stat)


def compute_total_stats(
    base_stats: Mapping[str, float],
    custom_stats: Iterable[CustomStat] | None = None,
) -> dict[str, float]:
    """Displayed stat totals: base values plus each substat's weighted share, capped at 100.

    Substats whose parent is not one of the six fixed stats are ignored.
    """
    parts: dict[str, list[float]] = {key: [float(base_stats.get(key, 0) or 0)] for key in STAT_KEYS}
    for stat in custom_stats or ():
        parent = normalize_stat_key(stat.parent_stat)
        if parent is None:
            continue
        parts[parent].append(substat_contribution(stat))
    return {key: clamp_stat(math.fsum(values)) for key, values in parts.items()}


def add_clamped(stats: Mapping[str, float], deltas: Mapping[str, float]) -> dict[str, float]:
    result = {key: float(stats.get(key, 0) or 0) for key in STAT_KEYS}
    for key, delta in deltas.items():
        parent = normalize_stat_key(key)
        if parent is None:
            continue
        result[parent] = min(MAX_STAT_VALUE, result[parent] + float(delta))
    return result
