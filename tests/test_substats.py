from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from statquest.db import Database, Increment
from statquest.errors import NotFoundError, ValidationError
from statquest.stats import compute_total_stats
from statquest.substats import add_substat, delete_substat, group_substats_by_parent, update_substat_value


def _dt(y: int, m: int, d: int, h: int = 10, minute: int = 0) -> datetime:
    return datetime(y, m, d, h, minute, tzinfo=ZoneInfo("Europe/Oslo"))


def _db_with_user(tmp_path, user_id: str = "u1") -> Database:
    db = Database(tmp_path / "app.db")
    db.create_user_record(user_id, "Ada", "ada@example.com", _dt(2026, 3, 1))
    return db


def test_new_substat_starts_at_ten_and_grants_parent(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    before = db.get_user_record("u1")
    before_total = compute_total_stats(before.stats, before.custom_stats)["knowledge"]

    stat = add_substat(db, "u1", "Coding", "knowledge", "💻", 0.2)

    after = db.get_user_record("u1")
    assert stat.value == 10
    assert stat.parent_stat == "knowledge"
    assert [s.name for s in after.custom_stats] == ["Coding"]
    # base is bumped once and the substat contributes on top of it
    assert after.stats["knowledge"] == pytest.approx(2.0)
    total = compute_total_stats(after.stats, after.custom_stats)["knowledge"]
    assert total - before_total == pytest.approx(4.0)


def test_derived_only_mode_leaves_base_untouched(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    add_substat(db, "u1", "Coding", "knowledge", boost_ratio=0.2, grant_base=False)
    after = db.get_user_record("u1")
    assert after.stats["knowledge"] == 0
    assert compute_total_stats(after.stats, after.custom_stats)["knowledge"] == pytest.approx(2.0)


def test_parent_grant_is_capped(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    db.write_user_fields("u1", {"stats.physical": 99.5})
    add_substat(db, "u1", "Lifting", "physical", boost_ratio=1.0)
    assert db.get_user_record("u1").stats["physical"] == 100


def test_missing_ratio_defaults(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    stat = add_substat(db, "u1", "Poetry", "Creativity", boost_ratio=None)
    assert stat.boost_ratio == 0.1
    assert stat.parent_stat == "creativity"


@pytest.mark.parametrize(
    ("name", "parent", "ratio"),
    [
        ("", "knowledge", 0.2),
        ("   ", "knowledge", 0.2),
        ("Coding", "wisdom", 0.2),
        ("Coding", "knowledge", 0),
        ("Coding", "knowledge", -0.5),
        ("Coding", "knowledge", 1.5),
        ("Coding", "knowledge", float("nan")),
    ],
)
def test_invalid_input_is_rejected_before_any_write(tmp_path, name: str, parent: str, ratio: float) -> None:
    db = _db_with_user(tmp_path)
    before = db.get_user_record("u1")
    with pytest.raises(ValidationError):
        add_substat(db, "u1", name, parent, boost_ratio=ratio)
    after = db.get_user_record("u1")
    assert after.version == before.version
    assert after.custom_stats == ()


def test_duplicate_name_is_rejected(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    add_substat(db, "u1", "Coding", "knowledge")
    with pytest.raises(ValidationError):
        add_substat(db, "u1", "coding", "mental")
    assert len(db.get_user_record("u1").custom_stats) == 1


def test_missing_user_raises_not_found(tmp_path) -> None:
    db = Database(tmp_path / "app.db")
    with pytest.raises(NotFoundError):
        add_substat(db, "ghost", "Coding", "knowledge")


def test_delete_keeps_granted_base(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    add_substat(db, "u1", "Coding", "knowledge", boost_ratio=0.5)
    add_substat(db, "u1", "Chess", "mental", boost_ratio=0.5)

    delete_substat(db, "u1", "Coding", "knowledge")

    after = db.get_user_record("u1")
    assert [s.name for s in after.custom_stats] == ["Chess"]
    assert after.stats["knowledge"] == pytest.approx(5.0)
    assert compute_total_stats(after.stats, after.custom_stats)["knowledge"] == pytest.approx(5.0)


def test_delete_needs_matching_parent(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    add_substat(db, "u1", "Coding", "knowledge")
    with pytest.raises(NotFoundError):
        delete_substat(db, "u1", "Coding", "mental")
    with pytest.raises(NotFoundError):
        delete_substat(db, "u1", "Drawing", "knowledge")
    assert len(db.get_user_record("u1").custom_stats) == 1


def test_update_value_is_clamped(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    add_substat(db, "u1", "Coding", "knowledge")
    assert update_substat_value(db, "u1", "Coding", 250).value == 100
    assert update_substat_value(db, "u1", "Coding", -3).value == 0
    assert update_substat_value(db, "u1", "Coding", 42.5).value == 42.5
    assert db.get_user_record("u1").custom_stats[0].value == 42.5
    with pytest.raises(ValidationError):
        update_substat_value(db, "u1", "Coding", float("nan"))
    with pytest.raises(ValidationError):
        update_substat_value(db, "u1", "Coding", "lots")
    assert db.get_user_record("u1").custom_stats[0].value == 42.5
    with pytest.raises(NotFoundError):
        update_substat_value(db, "u1", "Drawing", 5)


def test_group_by_parent_drops_unknown(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    add_substat(db, "u1", "Coding", "knowledge")
    add_substat(db, "u1", "Reading", "knowledge")
    grouped = group_substats_by_parent(db.get_user_record("u1").custom_stats)
    assert [s.name for s in grouped["knowledge"]] == ["Coding", "Reading"]
    assert grouped["social"] == []


def test_names_match_ignoring_case_everywhere(tmp_path) -> None:
    db = _db_with_user(tmp_path)
    add_substat(db, "u1", "Coding", "knowledge")
    assert update_substat_value(db, "u1", " coding ", 30).name == "Coding"
    delete_substat(db, "u1", "CODING", "knowledge")
    assert db.get_user_record("u1").custom_stats == ()


def test_add_retries_after_competing_write(tmp_path, monkeypatch) -> None:
    db = _db_with_user(tmp_path)
    original = db.write_user_fields
    calls: list[int] = []

    def write_after_competitor(user_id, fields, increments=None, expected_version=None, now=None):
        calls.append(1)
        if len(calls) == 1:
            original(user_id, {"experience": 40}, increments={"stats.knowledge": Increment(3)})
        return original(user_id, fields, increments, expected_version, now)

    monkeypatch.setattr(db, "write_user_fields", write_after_competitor)

    add_substat(db, "u1", "Coding", "knowledge", boost_ratio=0.2)

    after = db.get_user_record("u1")
    assert len(calls) == 2
    assert after.experience == 40
    assert after.stats["knowledge"] == pytest.approx(5.0)
    assert [s.name for s in after.custom_stats] == ["Coding"]
