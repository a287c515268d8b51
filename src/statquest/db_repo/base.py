from __future__ import annotations

import sqlite3
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from statquest.models import UserProfile


class BaseDatabase:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._listeners: dict[str, list[Callable[[UserProfile], None]]] = {}
        self._listeners_lock = threading.Lock()
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """
            )
            current = {row["version"] for row in conn.execute("SELECT version FROM schema_migrations")}

            migrations: dict[int, str] = {
                1: """
                    CREATE TABLE user_records (
                        user_id TEXT PRIMARY KEY,
                        doc_json TEXT NOT NULL,
                        version INTEGER NOT NULL DEFAULT 1,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    );

                    CREATE TABLE quests (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        description TEXT NOT NULL DEFAULT '',
                        quest_type TEXT NOT NULL,
                        difficulty TEXT NOT NULL,
                        completed INTEGER NOT NULL DEFAULT 0,
                        rewards_json TEXT NOT NULL,
                        substat_boosts_json TEXT NOT NULL DEFAULT '{}',
                        created_at TEXT NOT NULL,
                        completed_at TEXT
                    );

                    CREATE INDEX idx_quests_user_created ON quests(user_id, created_at);
                """,
                2: """
                    CREATE INDEX IF NOT EXISTS idx_quests_user_type_completed
                    ON quests(user_id, quest_type, completed);
                """,
            }

            now = datetime.now().isoformat(timespec="seconds")
            for version in sorted(migrations):
                if version in current:
                    continue
                conn.executescript(migrations[version])
                conn.execute(
                    "INSERT INTO schema_migrations(version, applied_at) VALUES (?, ?)",
                    (version, now),
                )

    def subscribe_user_record(self, user_id: str, on_change: Callable[[UserProfile], None]) -> Callable[[], None]:
        """Register ``on_change`` for every committed write to ``user_id``.

        Returns a callable that removes the listener; calling it twice is harmless.
        """
        with self._listeners_lock:
            self._listeners.setdefault(user_id, []).append(on_change)

        def unsubscribe() -> None:
            with self._listeners_lock:
                listeners = self._listeners.get(user_id, [])
                if on_change in listeners:
                    listeners.remove(on_change)
                if not listeners:
                    self._listeners.pop(user_id, None)

        return unsubscribe

    def _notify(self, profile: UserProfile) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners.get(profile.user_id, []))
        for listener in listeners:
            listener(profile)
