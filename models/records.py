"""Value objects exchanged between the device core and its connector."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional


STATUS_OK = 200
STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_ERROR = 500


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class StateSnapshot:
    """Consistent copy of every device state field taken in one critical section."""

    reading: Decimal
    cadence_millis: int
    publish_enabled: bool
    message_sequence: int


@dataclass(frozen=True, slots=True)
class TelemetryRecord:
    """A single published reading."""

    device_id: str
    sequence: int
    reading: Decimal
    alert: bool
    created_at: datetime = field(default_factory=_utcnow)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "deviceId": self.device_id,
            "messageId": self.sequence,
            "reading": float(self.reading),
            "alert": self.alert,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class CommandRequest:
    name: str
    payload: Optional[str] = None


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a remote command, with HTTP-like status codes."""

    status: int
    message: str
    payload: Optional[Mapping[str, Any]] = None

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status < 300

    @classmethod
    def ok(cls, message: str, payload: Optional[Mapping[str, Any]] = None) -> CommandResult:
        return cls(status=STATUS_OK, message=message, payload=payload)

    @classmethod
    def client_error(cls, message: str) -> CommandResult:
        return cls(status=STATUS_BAD_REQUEST, message=message)

    @classmethod
    def failure(cls, message: str) -> CommandResult:
        return cls(status=STATUS_ERROR, message=message)


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """A targeted hub-to-device message waiting for acknowledgment."""

    message_id: str
    body: bytes
    properties: Mapping[str, str] = field(default_factory=dict)
    enqueued_at: datetime = field(default_factory=_utcnow)
