from __future__ import annotations

from dataclasses import dataclass

from statquest.leveling import LevelProgress, level_progress
from statquest.models import ActiveBasicQuest, UserProfile
from statquest.stats import STAT_KEYS, compute_total_stats, effective_boost_ratio, substat_contribution
from statquest.substats import group_substats_by_parent


@dataclass(frozen=True)
class SubstatView:
    name: str
    icon: str
    value: float
    boost_ratio: float
    contribution: float


@dataclass(frozen=True)
class StatView:
    key: str
    base: float
    total: float
    substats: tuple[SubstatView, ...]


@dataclass(frozen=True)
class ProfileView:
    user_id: str
    display_name: str
    stats: tuple[StatView, ...]
    total_stats: dict[str, float]
    progress: LevelProgress
    hp: float
    energy: float
    available_quests: tuple[ActiveBasicQuest, ...]
    accepted_quests: tuple[ActiveBasicQuest, ...]


def build_profile_view(profile: UserProfile) -> ProfileView:
    totals = compute_total_stats(profile.stats, profile.custom_stats)
    grouped = group_substats_by_parent(profile.custom_stats)
    stats = tuple(
        StatView(
            key=key,
            base=profile.stats.get(key, 0.0),
            total=totals[key],
            substats=tuple(
                SubstatView(
                    name=s.name,
                    icon=s.icon,
                    value=s.value,
                    boost_ratio=effective_boost_ratio(s),
                    contribution=substat_contribution(s),
                )
                for s in grouped[key]
            ),
        )
        for key in STAT_KEYS
    )
    active = profile.active_quests or ()
    return ProfileView(
        user_id=profile.user_id,
        display_name=profile.display_name,
        stats=stats,
        total_stats=totals,
        progress=level_progress(profile.level, profile.experience),
        hp=profile.hp,
        energy=profile.energy,
        available_quests=tuple(q for q in active if q.status == "available"),
        accepted_quests=tuple(q for q in active if q.status == "accepted"),
    )
