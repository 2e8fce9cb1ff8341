"""Boundary between the device core and whatever carries it to the hub."""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional, Protocol

from models.records import CommandRequest, CommandResult, InboundMessage, TelemetryRecord

CommandHandler = Callable[[CommandRequest], CommandResult]
DesiredConfigCallback = Callable[[Mapping[str, Any]], Any]


class ConnectorError(RuntimeError):
    """Base class for every failure reported by a connector."""


class SendError(ConnectorError):
    """A telemetry record could not be delivered."""


class UploadError(ConnectorError):
    """A local resource could not be uploaded."""


class Connector(Protocol):
    def send(self, record: TelemetryRecord) -> None:
        ...

    def receive_inbound(self, timeout: float) -> Optional[InboundMessage]:
        ...

    def acknowledge(self, message: InboundMessage) -> None:
        ...

    def register_command_handler(self, name: str, handler: CommandHandler) -> None:
        ...

    def on_desired_config_changed(self, callback: DesiredConfigCallback) -> None:
        ...

    def report_state(self, properties: Mapping[str, Any]) -> None:
        ...

    def upload_blob(self, resource: str) -> str:
        ...

    def close(self) -> None:
        ...
