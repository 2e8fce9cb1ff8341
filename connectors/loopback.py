"""In-process hub that satisfies the connector contract.

The device side calls the ``Connector`` methods; operators (the HTTP facade,
tests) call the hub-side methods to invoke commands, push desired
properties, queue inbound messages and read back published telemetry.
"""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from functools import lru_cache
from pathlib import Path
from threading import Condition, Lock
from typing import Any, Deque, Dict, List, Mapping, Optional
from uuid import uuid4

from connectors.base import (
    CommandHandler,
    ConnectorError,
    DesiredConfigCallback,
    SendError,
    UploadError,
)
from datastore.mock_twin import MockDeviceTwin, build_default_twin
from models.records import (
    STATUS_NOT_FOUND,
    CommandRequest,
    CommandResult,
    InboundMessage,
    TelemetryRecord,
)
from settings import get_settings
from storage.mock_blob import MockBlobContainer, blob_name_for, build_default_container

logger = logging.getLogger(__name__)


class LoopbackConnector:
    """Coordinates telemetry history, the inbound queue, the twin and uploads."""

    def __init__(
        self,
        device_id: str,
        twin: MockDeviceTwin,
        container: MockBlobContainer,
        workers: int = 4,
        telemetry_history: int = 1000,
    ) -> None:
        self.device_id = device_id
        self.twin = twin
        self.container = container
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="hub-command")
        # Desired-property callbacks run one at a time, in push order.
        self.twin_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="hub-twin")
        self._telemetry: Deque[TelemetryRecord] = deque(maxlen=telemetry_history)
        self._telemetry_lock = Lock()
        self._inbound: Deque[InboundMessage] = deque()
        self._in_flight: Dict[str, InboundMessage] = {}
        self._inbound_ready = Condition()
        self._handlers: Dict[str, CommandHandler] = {}
        self._desired_callbacks: List[DesiredConfigCallback] = []
        self._registry_lock = Lock()
        self._closed = False

    # Device side

    def send(self, record: TelemetryRecord) -> None:
        if self._closed:
            raise SendError("Connector is closed.")
        with self._telemetry_lock:
            self._telemetry.append(record)

    def receive_inbound(self, timeout: float) -> Optional[InboundMessage]:
        with self._inbound_ready:
            if not self._inbound and not self._closed:
                self._inbound_ready.wait(timeout)
            if self._closed or not self._inbound:
                return None
            message = self._inbound.popleft()
            self._in_flight[message.message_id] = message
            return message

    def acknowledge(self, message: InboundMessage) -> None:
        with self._inbound_ready:
            if self._in_flight.pop(message.message_id, None) is None:
                raise ConnectorError(f"Message {message.message_id!r} is not awaiting acknowledgment.")

    def register_command_handler(self, name: str, handler: CommandHandler) -> None:
        with self._registry_lock:
            self._handlers[name] = handler

    def on_desired_config_changed(self, callback: DesiredConfigCallback) -> None:
        with self._registry_lock:
            self._desired_callbacks.append(callback)

    def report_state(self, properties: Mapping[str, Any]) -> None:
        if self._closed:
            raise ConnectorError("Connector is closed.")
        self.twin.update_reported(properties)

    def upload_blob(self, resource: str) -> str:
        source = Path(resource)
        try:
            data = source.read_bytes()
        except OSError as exc:
            raise UploadError(f"Unable to read {resource}: {exc.strerror or exc}") from exc
        return self.container.put_blob(blob_name_for(resource), data)

    def close(self) -> None:
        """Wake blocked receivers and stop accepting work."""
        with self._inbound_ready:
            self._closed = True
            self._inbound_ready.notify_all()
        self.executor.shutdown(wait=False, cancel_futures=True)
        self.twin_executor.shutdown(wait=False, cancel_futures=True)

    @property
    def closed(self) -> bool:
        return self._closed

    # Hub side

    def invoke_command(
        self, name: str, payload: Optional[str] = None, timeout: float = 30.0
    ) -> CommandResult:
        """Run a registered command handler on the command pool and wait for its result."""
        if self._closed:
            raise ConnectorError("Connector is closed.")
        with self._registry_lock:
            handler = self._handlers.get(name)
        if handler is None:
            return CommandResult(status=STATUS_NOT_FOUND, message=f"Method {name!r} not found")

        future: Future[CommandResult] = self.executor.submit(
            handler, CommandRequest(name=name, payload=payload)
        )
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            raise TimeoutError(f"Command {name!r} did not complete within {timeout}s.")

    def update_desired(self, patch: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge desired properties and notify the device asynchronously."""
        if self._closed:
            raise ConnectorError("Connector is closed.")
        delta = self.twin.update_desired(patch)
        with self._registry_lock:
            callbacks = list(self._desired_callbacks)
        for callback in callbacks:
            future = self.twin_executor.submit(callback, dict(delta))
            future.add_done_callback(self._log_callback_failure)
        return delta

    def enqueue_message(self, body: bytes, properties: Optional[Mapping[str, str]] = None) -> str:
        message = InboundMessage(
            message_id=str(uuid4()),
            body=body,
            properties=dict(properties or {}),
        )
        with self._inbound_ready:
            self._inbound.append(message)
            self._inbound_ready.notify()
        return message.message_id

    def telemetry(self, limit: Optional[int] = None) -> List[TelemetryRecord]:
        with self._telemetry_lock:
            records = list(self._telemetry)
        if limit is not None:
            records = records[-limit:] if limit > 0 else []
        return records

    def pending_messages(self) -> int:
        with self._inbound_ready:
            return len(self._inbound) + len(self._in_flight)

    @staticmethod
    def _log_callback_failure(future: Future[Any]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Desired property callback failed",
                exc_info=(type(exc), exc, exc.__traceback__),
            )


@lru_cache
def build_default_connector() -> LoopbackConnector:
    """Factory that wires the loopback hub with the default mocks."""
    settings = get_settings()
    return LoopbackConnector(
        device_id=settings.device_id,
        twin=build_default_twin(),
        container=build_default_container(),
        workers=settings.command_workers,
        telemetry_history=settings.telemetry_history,
    )
