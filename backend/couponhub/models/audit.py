from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class AuditStamp:
    """Creation/modification timestamps composed into audited entities.

    Mapped with ``composite()`` onto ``created_at``/``updated_at`` columns and
    stamped by the campaign store at save time.
    """

    created_at: datetime | None = None
    updated_at: datetime | None = None

    def touched(self, now: datetime) -> "AuditStamp":
        return AuditStamp(created_at=self.created_at or now, updated_at=now)
