from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from typing import Any, Protocol

from statquest.db_converters import _row_to_quest, rewards_to_dict
from statquest.db_repo.users import Increment
from statquest.errors import AlreadyCompletedError, NotFoundError
from statquest.models import Quest, QuestRewards, UserProfile


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


class QuestMixin:
    def insert_quest(
        self: DbProtocol,
        user_id: str,
        title: str,
        description: str,
        quest_type: str,
        difficulty: str,
        rewards: QuestRewards,
        substat_boosts: dict[str, int],
        created_at: datetime,
    ) -> Quest:
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO quests(
                    user_id, title, description, quest_type, difficulty,
                    completed, rewards_json, substat_boosts_json, created_at
                )
                VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
                """,
                (
                    user_id,
                    title,
                    description,
                    quest_type,
                    difficulty,
                    json.dumps(rewards_to_dict(rewards)),
                    json.dumps(substat_boosts),
                    created_at.isoformat(),
                ),
            )
            row = conn.execute("SELECT * FROM quests WHERE id = ?", (cur.lastrowid,)).fetchone()
        assert row is not None
        return _row_to_quest(row)

    def get_quest(self: DbProtocol, quest_id: int) -> Quest:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM quests WHERE id = ?", (quest_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"quest {quest_id} not found")
        return _row_to_quest(row)

    def list_quests_for_user(
        self: DbProtocol,
        user_id: str,
        quest_type: str | None = None,
        completed: bool | None = None,
    ) -> list[Quest]:
        conditions = ["user_id = ?"]
        params: list[Any] = [user_id]
        if quest_type is not None:
            conditions.append("quest_type = ?")
            params.append(quest_type)
        if completed is not None:
            conditions.append("completed = ?")
            params.append(1 if completed else 0)
        query = f"SELECT * FROM quests WHERE {' AND '.join(conditions)} ORDER BY created_at DESC, id DESC"
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_quest(row) for row in rows]

    def mark_quest_completed(self: DbProtocol, quest_id: int, completed_at: datetime) -> bool:
        with self._connect() as conn:
            cur = conn.execute(
                "UPDATE quests SET completed = 1, completed_at = ? WHERE id = ? AND completed = 0",
                (completed_at.isoformat(), quest_id),
            )
        return cur.rowcount > 0

    def commit_quest_reward(
        self: DbProtocol,
        quest_id: int,
        user_id: str,
        fields: dict[str, Any],
        increments: dict[str, Increment] | None,
        expected_version: int | None,
        completed_at: datetime,
    ) -> UserProfile:
        """Flip the quest to completed and write the user's reward in one transaction."""
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            cur = conn.execute(
                "UPDATE quests SET completed = 1, completed_at = ? WHERE id = ? AND user_id = ? AND completed = 0",
                (completed_at.isoformat(), quest_id, user_id),
            )
            if cur.rowcount == 0:
                raise AlreadyCompletedError(f"quest {quest_id} is already completed")
            profile = self._apply_user_write(conn, user_id, fields, increments, expected_version, completed_at)
        self._notify(profile)
        return profile
