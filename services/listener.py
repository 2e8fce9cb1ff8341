"""Long-poll loop for hub-to-device messages."""

from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Callable, Optional

from connectors.base import Connector, ConnectorError
from models.records import InboundMessage

logger = logging.getLogger(__name__)

InspectCallback = Callable[[InboundMessage, str], None]


def log_inbound_message(message: InboundMessage, text: str) -> None:
    logger.info("Inbound message: %s", text, extra={"message_id": message.message_id})


class InboundMessageListener:
    """Receives, surfaces and acknowledges inbound messages until stopped.

    Every received message is acknowledged exactly once, even when its body
    cannot be decoded or the inspection callback fails.
    """

    def __init__(
        self,
        connector: Connector,
        inspect: Optional[InspectCallback] = None,
        receive_timeout: float = 10.0,
        encoding: str = "utf-8",
        stop_event: Optional[Event] = None,
    ) -> None:
        self.connector = connector
        self.inspect = inspect or log_inbound_message
        self.receive_timeout = receive_timeout
        self.encoding = encoding
        self._stop = stop_event or Event()
        self._thread: Optional[Thread] = None
        self.handled_count = 0

    def start(self) -> Thread:
        if self._thread is not None:
            raise RuntimeError("Inbound listener already started.")
        self._thread = Thread(target=self.run, name="inbound-listener", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self) -> None:
        logger.info("Inbound listener started")
        try:
            while not self._stop.is_set():
                self.poll_once()
        except Exception:
            logger.exception("Inbound listener crashed")
        else:
            logger.info("Inbound listener stopped")

    def poll_once(self) -> Optional[InboundMessage]:
        message = self.connector.receive_inbound(self.receive_timeout)
        if message is None:
            return None

        try:
            text = message.body.decode(self.encoding)
        except UnicodeDecodeError as exc:
            logger.warning(
                "Could not decode inbound message",
                extra={"message_id": message.message_id, "reason": str(exc)},
            )
        else:
            try:
                self.inspect(message, text)
            except Exception:  # noqa: BLE001 - inspection is best effort
                logger.exception(
                    "Inbound message inspection failed",
                    extra={"message_id": message.message_id},
                )

        try:
            self.connector.acknowledge(message)
        except ConnectorError as exc:
            logger.warning(
                "Could not acknowledge inbound message",
                extra={"message_id": message.message_id, "reason": str(exc)},
            )
        self.handled_count += 1
        return message
