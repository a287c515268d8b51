from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class Settings:
    database_path: Path
    quest_pool_path: Path
    scheduler_interval_seconds: int
    scheduler_spawn_chance: float
    write_retry_limit: int
    substat_base_grants: bool
    api_token: str | None
    api_host: str
    api_port: int
    log_level: str


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text().splitlines():
        raw = line.strip()
        if not raw or raw.startswith("#") or "=" not in raw:
            continue
        key, value = raw.split("=", maxsplit=1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(value: str | None, default: int, minimum: int | None = None) -> int:
    try:
        parsed = int(value) if value is not None else default
    except ValueError:
        parsed = default
    if minimum is not None:
        parsed = max(minimum, parsed)
    return parsed


def _parse_probability(value: str | None, default: float) -> float:
    try:
        parsed = float(value) if value is not None else default
    except ValueError:
        return default
    return max(0.0, min(1.0, parsed))


def load_settings(env_file: Path | None = None) -> Settings:
    _load_env_file(env_file or Path(".env"))

    return Settings(
        database_path=Path(os.getenv("DATABASE_PATH", "./data/statquest.db")),
        quest_pool_path=Path(os.getenv("QUEST_POOL_PATH", "./basic_quests.yaml")),
        scheduler_interval_seconds=_parse_int(os.getenv("SCHEDULER_INTERVAL_SECONDS"), 300, minimum=1),
        scheduler_spawn_chance=_parse_probability(os.getenv("SCHEDULER_SPAWN_CHANCE"), 0.02),
        write_retry_limit=_parse_int(os.getenv("WRITE_RETRY_LIMIT"), 3, minimum=1),
        substat_base_grants=_parse_bool(os.getenv("SUBSTAT_BASE_GRANTS"), default=True),
        api_token=os.getenv("API_TOKEN") or None,
        api_host=os.getenv("API_HOST", "127.0.0.1"),
        api_port=_parse_int(os.getenv("API_PORT"), 8080),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )
