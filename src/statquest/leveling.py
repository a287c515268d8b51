from __future__ import annotations

from dataclasses import dataclass

XP_PER_LEVEL = 1000
FULL_RESOURCE = 100


@dataclass(frozen=True)
class LevelResult:
    level: int
    experience: int
    leveled_up: bool
    levels_gained: int


@dataclass(frozen=True)
class LevelProgress:
    level: int
    current_level_xp: int
    next_level_xp: int
    progress_ratio: float
    remaining_to_next: int


def experience_needed(level: int) -> int:
    return max(1, level) * XP_PER_LEVEL


def apply_experience(current_level: int, current_experience: int, gained: int) -> LevelResult:
    """Add ``gained`` XP and roll over every threshold it crosses.

    The remainder always ends below ``level * 1000``; a single huge reward can
    therefore grant several levels at once.
    """
    level = max(1, current_level)
    experience = max(0, current_experience) + max(0, gained)
    levels_gained = 0
    while experience >= experience_needed(level):
        experience -= experience_needed(level)
        level += 1
        levels_gained += 1
    return LevelResult(
        level=level,
        experience=experience,
        leveled_up=levels_gained > 0,
        levels_gained=levels_gained,
    )


def level_progress(level: int, experience: int) -> LevelProgress:
    needed = experience_needed(level)
    current = max(0, experience)
    return LevelProgress(
        level=max(1, level),
        current_level_xp=current,
        next_level_xp=needed,
        progress_ratio=min(current / needed, 1.0),
        remaining_to_next=max(needed - current, 0),
    )
