from __future__ import annotations

from datetime import datetime, timezone

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


def now_ms() -> int:
    return to_epoch_ms(now_utc())


def hours_ms(hours: float) -> int:
    return int(hours * HOUR_MS)
