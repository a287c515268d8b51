from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from statquest.db_converters import _row_to_profile, new_user_document, profile_from_document
from statquest.errors import ConflictError, NotFoundError
from statquest.models import UserProfile


@dataclass(frozen=True)
class Increment:
    """Additive update of a numeric field, optionally capped."""

    amount: float
    ceiling: float | None = None


class DbProtocol(Protocol):
    def _connect(self) -> sqlite3.Connection: ...
    def _notify(self, profile: UserProfile) -> None: ...
    def _apply_user_write(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        fields: dict[str, Any],
        increments: dict[str, Increment] | None,
        expected_version: int | None,
        now: datetime,
    ) -> UserProfile: ...


def _split_path(path: str) -> list[str]:
    parts = [p for p in path.split(".") if p]
    if not parts:
        raise ValueError(f"empty field path: {path!r}")
    return parts


def _parent_for(doc: dict[str, Any], parts: list[str]) -> dict[str, Any]:
    node = doc
    for key in parts[:-1]:
        child = node.get(key)
        if not isinstance(child, dict):
            child = {}
            node[key] = child
        node = child
    return node


def _set_path(doc: dict[str, Any], path: str, value: Any) -> None:
    parts = _split_path(path)
    _parent_for(doc, parts)[parts[-1]] = value


def _increment_path(doc: dict[str, Any], path: str, inc: Increment) -> None:
    parts = _split_path(path)
    parent = _parent_for(doc, parts)
    current = parent.get(parts[-1]) or 0
    if not isinstance(current, (int, float)):
        raise ValueError(f"field {path!r} is not numeric")
    updated = current + inc.amount
    if inc.ceiling is not None:
        updated = min(inc.ceiling, updated)
    if isinstance(current, int) and float(updated).is_integer() and isinstance(inc.amount, int):
        updated = int(updated)
    parent[parts[-1]] = updated


class UserMixin:
    def create_user_record(
        self: DbProtocol,
        user_id: str,
        display_name: str,
        email: str,
        now: datetime,
    ) -> UserProfile:
        doc = new_user_document(display_name, email)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT OR IGNORE INTO user_records(user_id, doc_json, version, created_at, updated_at)
                VALUES (?, ?, 1, ?, ?)
                """,
                (user_id, json.dumps(doc), now.isoformat(), now.isoformat()),
            )
            row = conn.execute("SELECT * FROM user_records WHERE user_id = ?", (user_id,)).fetchone()
        assert row is not None
        return _row_to_profile(row)

    def get_user_record(self: DbProtocol, user_id: str) -> UserProfile:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM user_records WHERE user_id = ?", (user_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"user {user_id} not found")
        return _row_to_profile(row)

    def list_user_ids(self: DbProtocol) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT user_id FROM user_records ORDER BY created_at").fetchall()
        return [str(row["user_id"]) for row in rows]

    def write_user_fields(
        self: DbProtocol,
        user_id: str,
        fields: dict[str, Any],
        increments: dict[str, Increment] | None = None,
        expected_version: int | None = None,
        now: datetime | None = None,
    ) -> UserProfile:
        """Apply ``fields`` (dotted paths are set) and ``increments`` in one transaction.

        With ``expected_version`` the write only lands if nobody wrote the record
        since that version was read; otherwise ConflictError.
        """
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            profile = self._apply_user_write(
                conn,
                user_id,
                fields,
                increments,
                expected_version,
                now or datetime.now(),
            )
        self._notify(profile)
        return profile

    def _apply_user_write(
        self: DbProtocol,
        conn: sqlite3.Connection,
        user_id: str,
        fields: dict[str, Any],
        increments: dict[str, Increment] | None,
        expected_version: int | None,
        now: datetime,
    ) -> UserProfile:
        row = conn.execute(
            "SELECT doc_json, version, created_at FROM user_records WHERE user_id = ?",
            (user_id,),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"user {user_id} not found")
        version = int(row["version"])
        if expected_version is not None and version != expected_version:
            raise ConflictError(f"user {user_id} changed (expected v{expected_version}, found v{version})")

        doc = json.loads(row["doc_json"])
        for path, value in fields.items():
            _set_path(doc, path, value)
        for path, inc in (increments or {}).items():
            _increment_path(doc, path, inc)

        cur = conn.execute(
            """
            UPDATE user_records
            SET doc_json = ?, version = version + 1, updated_at = ?
            WHERE user_id = ? AND version = ?
            """,
            (json.dumps(doc), now.isoformat(), user_id, version),
        )
        if cur.rowcount == 0:
            raise ConflictError(f"user {user_id} changed during write")
        return profile_from_document(user_id, doc, version + 1, datetime.fromisoformat(row["created_at"]))
