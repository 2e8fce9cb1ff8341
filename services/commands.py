"""Remote command registry and the device's command handlers."""

from __future__ import annotations

import json
import logging
import math
from decimal import Decimal, InvalidOperation
from threading import Lock
from typing import Dict, List, Optional

from connectors.base import CommandHandler, Connector, UploadError
from models.records import STATUS_NOT_FOUND, CommandRequest, CommandResult
from services.state import DeviceState

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Maps command names to handlers and turns handler crashes into failure results."""

    def __init__(self) -> None:
        self._handlers: Dict[str, CommandHandler] = {}
        self._lock = Lock()

    def register(self, name: str, handler: CommandHandler) -> None:
        with self._lock:
            if name in self._handlers:
                logger.warning("Replacing handler for command", extra={"command": name})
            self._handlers[name] = handler

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._handlers)

    def dispatch(self, request: CommandRequest) -> CommandResult:
        with self._lock:
            handler = self._handlers.get(request.name)
        if handler is None:
            logger.warning("Unknown command", extra={"command": request.name})
            return CommandResult(
                status=STATUS_NOT_FOUND, message=f"Method {request.name!r} not found"
            )

        try:
            result = handler(request)
        except Exception as exc:  # noqa: BLE001 - reported back to the hub
            logger.exception("Command handler failed", extra={"command": request.name})
            return CommandResult.failure(f"{request.name} failed: {exc}")

        logger.info(
            "Command handled",
            extra={"command": request.name, "status": result.status},
        )
        return result

    def bind(self, connector: Connector) -> None:
        """Register every known command with the connector, routed through :meth:`dispatch`."""
        for name in self.names():
            connector.register_command_handler(name, self.dispatch)


def parse_reading(payload: Optional[str]) -> Decimal:
    """Parse a command payload into a reading.

    Accepts a JSON number, a JSON string holding a number, or bare numeric
    text. Raises ``ValueError`` for anything else, including booleans and
    non-finite values.
    """
    if payload is None or not payload.strip():
        raise ValueError("reading not passed in")

    text = payload.strip()
    try:
        decoded = json.loads(text, parse_float=Decimal, parse_int=Decimal)
    except json.JSONDecodeError:
        decoded = text

    if isinstance(decoded, bool) or not isinstance(decoded, (Decimal, float, str)):
        raise ValueError(f"{text} is not a number")
    if isinstance(decoded, float) and not math.isfinite(decoded):
        raise ValueError(f"{text} is not a finite number")

    if isinstance(decoded, Decimal):
        value = decoded
    else:
        try:
            value = Decimal(str(decoded).strip())
        except InvalidOperation as exc:
            raise ValueError(f"{text} is not a number") from exc
    if not value.is_finite():
        raise ValueError(f"{text} is not a finite number")
    return value


class DeviceCommands:
    """Handlers for the commands the hub can invoke on the device."""

    def __init__(self, state: DeviceState, connector: Connector, upload_source: str) -> None:
        self.state = state
        self.connector = connector
        self.upload_source = upload_source

    def start(self, request: CommandRequest) -> CommandResult:
        self.state.set_publish_enabled(True)
        logger.info("Telemetry started")
        return CommandResult.ok("Start Succeeded")

    def stop(self, request: CommandRequest) -> CommandResult:
        self.state.set_publish_enabled(False)
        logger.info("Telemetry stopped")
        return CommandResult.ok("Stop Succeeded")

    def set_reading(self, request: CommandRequest) -> CommandResult:
        try:
            value = parse_reading(request.payload)
        except ValueError as exc:
            logger.warning(
                "Rejected reading override",
                extra={"command": request.name, "reason": str(exc)},
            )
            return CommandResult.client_error(f"Set Reading Failed: {exc}")

        self.state.set_reading(value)
        logger.info("Reading overridden", extra={"reading": value})
        return CommandResult.ok("Set Reading Succeeded", {"reading": float(value)})

    def upload(self, request: CommandRequest) -> CommandResult:
        resource = (request.payload or "").strip().strip('"') or self.upload_source
        try:
            destination = self.connector.upload_blob(resource)
        except UploadError as exc:
            logger.error("Upload failed", extra={"reason": str(exc)})
            return CommandResult.failure(f"Upload of {resource} failed: {exc}")

        logger.info("Uploaded file", extra={"destination": destination})
        return CommandResult.ok(
            f"File {resource} was uploaded as {destination}",
            {"destination": destination},
        )


def build_dispatcher(commands: DeviceCommands) -> CommandDispatcher:
    dispatcher = CommandDispatcher()
    dispatcher.register("start", commands.start)
    dispatcher.register("stop", commands.stop)
    dispatcher.register("set-reading", commands.set_reading)
    # Name used by earlier firmware for the same override.
    dispatcher.register("temperature", commands.set_reading)
    dispatcher.register("upload", commands.upload)
    return dispatcher
