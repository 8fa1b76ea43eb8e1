"""Messages exchanged between virtual users and the result collector."""

from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum


@dataclass(frozen=True)
class RequestResult:
    """Outcome of one executed request, sent by value to the collector."""

    request_name: str
    success: bool
    status_code: int
    duration: timedelta
    error: str | None = None
    user_id: int | None = None

    @property
    def duration_ms(self) -> float:
        return self.duration.total_seconds() * 1000.0


class UserEventKind(StrEnum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class UserEvent:
    """Lifecycle signal emitted by a virtual user's own task."""

    user_id: int
    kind: UserEventKind


CollectorMessage = RequestResult | UserEvent
