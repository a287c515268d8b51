from __future__ import annotations

import pytest

from statquest.leveling import apply_experience, experience_needed, level_progress


def test_level_up_rolls_over_remainder() -> None:
    result = apply_experience(1, 900, 150)
    assert (result.level, result.experience, result.leveled_up) == (2, 50, True)


def test_no_level_up_below_threshold() -> None:
    result = apply_experience(2, 500, 100)
    assert (result.level, result.experience, result.leveled_up) == (2, 600, False)
    assert result.levels_gained == 0


def test_exact_threshold_levels_up_with_zero_remainder() -> None:
    result = apply_experience(3, 2900, 100)
    assert (result.level, result.experience, result.leveled_up) == (4, 0, True)


def test_huge_reward_crosses_several_levels() -> None:
    # 1000 for level 1, 2000 for level 2, leaves 500 at level 3
    result = apply_experience(1, 0, 3500)
    assert result.level == 3
    assert result.experience == 500
    assert result.levels_gained == 2
    assert result.experience < result.level * 1000


@pytest.mark.parametrize("level", [1, 2, 5, 40])
def test_experience_needed_is_linear(level: int) -> None:
    assert experience_needed(level) == level * 1000


def test_level_progress_ratio() -> None:
    progress = level_progress(2, 500)
    assert progress.next_level_xp == 2000
    assert progress.progress_ratio == 0.25
    assert progress.remaining_to_next == 1500
