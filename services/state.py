"""Shared device state and the lock discipline every task uses to touch it."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from decimal import Decimal
from threading import TIMEOUT_MAX, Lock
from typing import Callable, Iterator, Optional, Tuple

from models.records import StateSnapshot

logger = logging.getLogger(__name__)

# Longest wait a threading primitive accepts.
MAX_CADENCE_MILLIS = int(TIMEOUT_MAX) * 1000


class StateLockError(RuntimeError):
    """The state lock could not be acquired in time; some holder never released it."""


class DeviceState:
    """Reading, cadence, publish flag and sequence behind a single lock.

    Every public method is one critical section, so a caller never observes
    fields from two different logical updates.
    """

    def __init__(
        self,
        reading: Decimal = Decimal("26"),
        cadence_millis: int = 5000,
        publish_enabled: bool = True,
        lock_timeout: float = 5.0,
    ) -> None:
        if not 0 < cadence_millis <= MAX_CADENCE_MILLIS:
            raise ValueError(
                f"cadence_millis must be between 1 and {MAX_CADENCE_MILLIS}."
            )
        self._reading = Decimal(reading)
        self._cadence_millis = cadence_millis
        self._publish_enabled = publish_enabled
        self._message_sequence = 0
        self._lock = Lock()
        self._lock_timeout = lock_timeout

    @contextmanager
    def _guard(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            logger.critical(
                "Device state lock not acquired within %.1fs", self._lock_timeout
            )
            raise StateLockError(
                f"Device state lock not acquired within {self._lock_timeout}s."
            )
        try:
            yield
        finally:
            self._lock.release()

    def snapshot(self) -> StateSnapshot:
        with self._guard():
            return StateSnapshot(
                reading=self._reading,
                cadence_millis=self._cadence_millis,
                publish_enabled=self._publish_enabled,
                message_sequence=self._message_sequence,
            )

    @property
    def reading(self) -> Decimal:
        with self._guard():
            return self._reading

    @property
    def cadence_millis(self) -> int:
        with self._guard():
            return self._cadence_millis

    @property
    def publish_enabled(self) -> bool:
        with self._guard():
            return self._publish_enabled

    @property
    def message_sequence(self) -> int:
        with self._guard():
            return self._message_sequence

    def set_reading(self, value: Decimal) -> None:
        with self._guard():
            self._reading = Decimal(value)

    def set_publish_enabled(self, enabled: bool) -> None:
        with self._guard():
            self._publish_enabled = bool(enabled)

    def set_cadence(self, cadence_millis: int) -> bool:
        """Store a new cadence. Returns ``False`` and keeps the old one when out of range."""
        if not 0 < cadence_millis <= MAX_CADENCE_MILLIS:
            return False
        with self._guard():
            self._cadence_millis = cadence_millis
        return True

    def advance_if_enabled(
        self, step: Callable[[Decimal], Decimal]
    ) -> Optional[Tuple[int, Decimal]]:
        """Replace the reading with ``step(reading)`` and take the next sequence number.

        Returns ``None`` without touching anything while publishing is disabled.
        The flag check, the reading update and the sequence increment share one
        critical section, so sequence order is commit order and a concurrent
        ``set_reading`` is never lost halfway.
        """
        with self._guard():
            if not self._publish_enabled:
                return None
            reading = Decimal(step(self._reading))
            self._reading = reading
            self._message_sequence += 1
            return self._message_sequence, reading
