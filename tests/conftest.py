from __future__ import annotations

import queue
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional

import pytest

from connectors.base import (
    CommandHandler,
    ConnectorError,
    DesiredConfigCallback,
    SendError,
    UploadError,
)
from models.records import InboundMessage, TelemetryRecord


class FakeConnector:
    """Records every call the device makes; failures are switched on per test."""

    def __init__(self) -> None:
        self.sent: List[TelemetryRecord] = []
        self.acknowledged: List[str] = []
        self.reported: List[Dict[str, Any]] = []
        self.uploads: List[str] = []
        self.handlers: Dict[str, CommandHandler] = {}
        self.desired_callbacks: List[DesiredConfigCallback] = []
        self.inbound: "queue.Queue[InboundMessage]" = queue.Queue()
        self.fail_sends = 0
        self.send_error: Exception = SendError("link down")
        self.fail_reports = False
        self.fail_uploads = False
        self.closed = False
        self._lock = Lock()

    def send(self, record: TelemetryRecord) -> None:
        with self._lock:
            if self.fail_sends:
                self.fail_sends -= 1
                raise self.send_error
            self.sent.append(record)

    def receive_inbound(self, timeout: float) -> Optional[InboundMessage]:
        if self.closed:
            return None
        try:
            return self.inbound.get(timeout=timeout)
        except queue.Empty:
            return None

    def acknowledge(self, message: InboundMessage) -> None:
        with self._lock:
            self.acknowledged.append(message.message_id)

    def register_command_handler(self, name: str, handler: CommandHandler) -> None:
        self.handlers[name] = handler

    def on_desired_config_changed(self, callback: DesiredConfigCallback) -> None:
        self.desired_callbacks.append(callback)

    def report_state(self, properties: Mapping[str, Any]) -> None:
        if self.fail_reports:
            raise ConnectorError("twin unavailable")
        self.reported.append(dict(properties))

    def upload_blob(self, resource: str) -> str:
        if self.fail_uploads:
            raise UploadError(f"Unable to read {resource}")
        self.uploads.append(resource)
        return f"uploads/{resource}"

    def close(self) -> None:
        self.closed = True

    def sent_sequences(self) -> List[int]:
        with self._lock:
            return [record.sequence for record in self.sent]


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()
