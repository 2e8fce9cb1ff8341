"""Applies desired configuration pushed from the hub."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from connectors.base import Connector, ConnectorError
from services.state import DeviceState

logger = logging.getLogger(__name__)

# First match wins.
CADENCE_OPTIONS = ("cadenceMillis", "freq")


def coerce_cadence(value: Any) -> Optional[int]:
    """Return ``value`` as a positive int, or ``None`` when it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        candidate = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        candidate = int(value)
    elif isinstance(value, str):
        try:
            candidate = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    return candidate if candidate > 0 else None


class ConfigSyncHandler:
    """Desired-configuration callback: applies the pushed cadence and reports it back."""

    def __init__(self, state: DeviceState, connector: Connector) -> None:
        self.state = state
        self.connector = connector

    def __call__(self, desired: Mapping[str, Any]) -> Optional[int]:
        option = next((name for name in CADENCE_OPTIONS if name in desired), None)
        if option is None:
            logger.debug("Desired configuration has no recognized options")
            return None

        raw = desired[option]
        cadence = coerce_cadence(raw)
        if cadence is None or not self.state.set_cadence(cadence):
            logger.warning(
                "Ignoring invalid desired cadence",
                extra={"option": option, "reason": f"not a positive integer in range: {raw!r}"},
            )
            return None

        logger.info("Telemetry cadence changed", extra={"option": option, "cadence_ms": cadence})
        try:
            self.connector.report_state({option: cadence})
        except ConnectorError as exc:
            logger.warning(
                "Could not report applied cadence",
                extra={"option": option, "reason": str(exc)},
            )
        return cadence
