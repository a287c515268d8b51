from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from statquest.db import Database, Increment
from statquest.errors import AlreadyCompletedError, AuthorizationError, ConflictError, NotFoundError, ValidationError
from statquest.quests import create_quest, list_open_quests
from statquest.rewards import complete_quest, plan_quest_reward
from statquest.stats import compute_total_stats
from statquest.substats import add_substat


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Europe/Oslo"))


def _setup(tmp_path) -> Database:
    db = Database(tmp_path / "app.db")
    db.create_user_record("u1", "Ada", "ada@example.com", _dt(2026, 3, 1))
    db.create_user_record("u2", "Bob", "bob@example.com", _dt(2026, 3, 1))
    return db


def test_reward_applies_direct_boost_and_substat_share(tmp_path) -> None:
    db = _setup(tmp_path)
    add_substat(db, "u1", "Coding", "physical", boost_ratio=0.2)
    quest = create_quest(
        db,
        "u1",
        "Ship the feature",
        stat_boosts={"physical": 5},
        substat_boosts={"Coding": 10},
        experience=150,
        now=_dt(2026, 3, 2),
    )
    before = db.get_user_record("u1")

    outcome = complete_quest(db, quest.id, "u1", now=_dt(2026, 3, 2, 12))

    after = db.get_user_record("u1")
    assert after.stats["physical"] - before.stats["physical"] == pytest.approx(7.0)
    assert after.custom_stats[0].value == 20
    assert after.experience == 150
    assert after.level == 1
    assert outcome.leveled_up is False
    assert outcome.substat_changes[0].contribution_delta == pytest.approx(2.0)
    assert outcome.total_stats == compute_total_stats(after.stats, after.custom_stats)
    assert outcome.total_stats["physical"] == pytest.approx(13.0)

    stored = db.get_quest(quest.id)
    assert stored.completed is True
    assert stored.completed_at == _dt(2026, 3, 2, 12)


def test_derived_only_mode_moves_only_the_substat(tmp_path) -> None:
    db = _setup(tmp_path)
    add_substat(db, "u1", "Coding", "physical", boost_ratio=0.2, grant_base=False)
    quest = create_quest(db, "u1", "Refactor", stat_boosts={"physical": 5}, substat_boosts={"Coding": 10})

    complete_quest(db, quest.id, "u1", grant_base=False)

    after = db.get_user_record("u1")
    assert after.stats["physical"] == pytest.approx(5.0)
    assert compute_total_stats(after.stats, after.custom_stats)["physical"] == pytest.approx(9.0)


def test_level_up_refills_hp_and_energy(tmp_path) -> None:
    db = _setup(tmp_path)
    db.write_user_fields("u1", {"experience": 900, "hp": 40, "energy": 10})
    quest = create_quest(db, "u1", "Big push", experience=150)

    outcome = complete_quest(db, quest.id, "u1")

    after = db.get_user_record("u1")
    assert (after.level, after.experience) == (2, 50)
    assert (after.hp, after.energy) == (100, 100)
    assert outcome.leveled_up is True
    assert outcome.level == 2


def test_no_level_up_keeps_resources(tmp_path) -> None:
    db = _setup(tmp_path)
    db.write_user_fields("u1", {"experience": 100, "hp": 40})
    quest = create_quest(db, "u1", "Small step", experience=50)
    complete_quest(db, quest.id, "u1")
    after = db.get_user_record("u1")
    assert after.hp == 40
    assert after.experience == 150


def test_stat_reward_is_capped(tmp_path) -> None:
    db = _setup(tmp_path)
    db.write_user_fields("u1", {"stats.social": 98})
    quest = create_quest(db, "u1", "Host dinner", stat_boosts={"social": 5})
    complete_quest(db, quest.id, "u1")
    assert db.get_user_record("u1").stats["social"] == 100


def test_second_completion_is_rejected_without_changes(tmp_path) -> None:
    db = _setup(tmp_path)
    quest = create_quest(db, "u1", "Stretch", stat_boosts={"physical": 2})
    complete_quest(db, quest.id, "u1")
    snapshot = db.get_user_record("u1")

    with pytest.raises(AlreadyCompletedError):
        complete_quest(db, quest.id, "u1")

    assert db.get_user_record("u1") == snapshot


def test_foreign_quest_is_rejected(tmp_path) -> None:
    db = _setup(tmp_path)
    quest = create_quest(db, "u1", "Stretch", stat_boosts={"physical": 2})
    with pytest.raises(AuthorizationError):
        complete_quest(db, quest.id, "u2")
    assert db.get_quest(quest.id).completed is False
    assert db.get_user_record("u2").stats["physical"] == 0


def test_unknown_quest_raises_not_found(tmp_path) -> None:
    db = _setup(tmp_path)
    with pytest.raises(NotFoundError):
        complete_quest(db, 999, "u1")


def test_boost_for_missing_substat_is_skipped(tmp_path) -> None:
    db = _setup(tmp_path)
    quest = create_quest(db, "u1", "Practice", stat_boosts={"mental": 3}, substat_boosts={"Piano": 10})
    outcome = complete_quest(db, quest.id, "u1")
    assert outcome.substat_changes == ()
    assert db.get_user_record("u1").stats["mental"] == 3


def test_plan_does_not_write(tmp_path) -> None:
    db = _setup(tmp_path)
    quest = create_quest(db, "u1", "Read", stat_boosts={"knowledge": 4}, experience=60)
    profile = db.get_user_record("u1")
    plan = plan_quest_reward(quest, profile)
    assert plan.stat_deltas == {"knowledge": 4}
    assert plan.projected_stats["knowledge"] == 4
    assert plan.level.experience == 60
    assert db.get_user_record("u1").version == profile.version


def test_create_quest_validation(tmp_path) -> None:
    db = _setup(tmp_path)
    with pytest.raises(ValidationError):
        create_quest(db, "u1", "  ")
    with pytest.raises(ValidationError):
        create_quest(db, "u1", "Quest", quest_type="monthly")
    with pytest.raises(ValidationError):
        create_quest(db, "u1", "Quest", difficulty="legendary")
    with pytest.raises(ValidationError):
        create_quest(db, "u1", "Quest", stat_boosts={"luck": 3})
    with pytest.raises(ValidationError):
        create_quest(db, "u1", "Quest", stat_boosts={"physical": -1})


def test_create_quest_defaults_experience_from_difficulty(tmp_path) -> None:
    db = _setup(tmp_path)
    quest = create_quest(db, "u1", "Marathon", difficulty="Epic", stat_boosts={"Physical": 10})
    assert quest.rewards.experience == 400
    assert quest.rewards.stats == {"physical": 10}
    assert quest.difficulty == "epic"


def test_list_open_quests_hides_completed(tmp_path) -> None:
    db = _setup(tmp_path)
    first = create_quest(db, "u1", "One", now=_dt(2026, 3, 1))
    second = create_quest(db, "u1", "Two", quest_type="weekly", now=_dt(2026, 3, 2))
    create_quest(db, "u2", "Other", now=_dt(2026, 3, 3))
    complete_quest(db, first.id, "u1")

    assert [q.id for q in list_open_quests(db, "u1")] == [second.id]
    assert list_open_quests(db, "u1", quest_type="daily") == []


def test_completion_rereads_after_competing_write(tmp_path, monkeypatch) -> None:
    db = _setup(tmp_path)
    quest = create_quest(db, "u1", "Lift", stat_boosts={"physical": 5}, experience=100)
    original = db.commit_quest_reward
    calls: list[int] = []

    def commit_after_competitor(**kwargs):
        calls.append(1)
        if len(calls) == 1:
            db.write_user_fields("u1", {"experience": 30}, increments={"stats.mental": Increment(4)})
        return original(**kwargs)

    monkeypatch.setattr(db, "commit_quest_reward", commit_after_competitor)

    outcome = complete_quest(db, quest.id, "u1")

    after = db.get_user_record("u1")
    assert len(calls) == 2
    assert after.experience == 130
    assert after.stats["physical"] == 5
    assert after.stats["mental"] == 4
    assert outcome.experience == 130
    assert db.get_quest(quest.id).completed is True


def test_completion_gives_up_without_partial_state(tmp_path, monkeypatch) -> None:
    db = _setup(tmp_path)
    quest = create_quest(db, "u1", "Lift", stat_boosts={"physical": 5}, experience=100)
    original = db.commit_quest_reward

    def always_contended(**kwargs):
        db.write_user_fields("u1", {}, increments={"stats.social": Increment(1)})
        return original(**kwargs)

    monkeypatch.setattr(db, "commit_quest_reward", always_contended)

    with pytest.raises(ConflictError):
        complete_quest(db, quest.id, "u1", attempts=2)

    after = db.get_user_record("u1")
    assert after.experience == 0
    assert after.stats["physical"] == 0
    assert after.stats["social"] == 2
    assert db.get_quest(quest.id).completed is False


def test_substat_boost_matches_name_ignoring_case(tmp_path) -> None:
    db = _setup(tmp_path)
    add_substat(db, "u1", "Coding", "knowledge", boost_ratio=0.5)
    quest = create_quest(db, "u1", "Kata", substat_boosts={"coding": 10})
    outcome = complete_quest(db, quest.id, "u1")
    assert outcome.substat_changes[0].name == "Coding"
    assert db.get_user_record("u1").custom_stats[0].value == 20
