from __future__ import annotations

from datetime import datetime, timezone
from typing import Protocol


class Clock(Protocol):
    def utcnow(self) -> datetime: ...


class SystemClock:
    """Wall clock in UTC."""

    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)
