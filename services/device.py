"""Wiring and lifecycle for the simulated device."""

from __future__ import annotations

import logging
import random
from functools import lru_cache
from threading import Event
from typing import Optional

from connectors.base import Connector, ConnectorError
from connectors.loopback import build_default_connector
from models.records import StateSnapshot
from services.commands import CommandDispatcher, DeviceCommands, build_dispatcher
from services.config_sync import ConfigSyncHandler
from services.generator import ReadingGenerator
from services.listener import InboundMessageListener, InspectCallback
from services.publisher import TelemetryPublisher
from services.state import DeviceState
from settings import Settings, get_settings

logger = logging.getLogger(__name__)


class DeviceRuntime:
    """Owns the device state and the tasks that share it."""

    def __init__(
        self,
        settings: Settings,
        connector: Connector,
        state: Optional[DeviceState] = None,
        rng: Optional[random.Random] = None,
        inspect: Optional[InspectCallback] = None,
    ) -> None:
        self.settings = settings
        self.connector = connector
        self.state = state or DeviceState(
            reading=settings.initial_reading,
            cadence_millis=settings.cadence_millis,
            lock_timeout=settings.state_lock_timeout,
        )
        self._stop = Event()
        self.publisher = TelemetryPublisher(
            device_id=settings.device_id,
            state=self.state,
            connector=connector,
            generator=ReadingGenerator(settings.walk_mode),
            alert_threshold=settings.alert_threshold,
            rng=rng,
            stop_event=self._stop,
        )
        self.listener = InboundMessageListener(
            connector=connector,
            inspect=inspect,
            receive_timeout=settings.receive_timeout,
            encoding=settings.inbound_encoding,
            stop_event=self._stop,
        )
        self.commands = DeviceCommands(
            state=self.state, connector=connector, upload_source=settings.upload_source
        )
        self.dispatcher: CommandDispatcher = build_dispatcher(self.commands)
        self.config_sync = ConfigSyncHandler(state=self.state, connector=connector)
        self._started = False

    @property
    def running(self) -> bool:
        return self._started and not self._stop.is_set()

    def start(self) -> None:
        if self._started:
            raise RuntimeError("Device runtime already started.")
        self._started = True

        self.dispatcher.bind(self.connector)
        self.connector.on_desired_config_changed(self.config_sync)
        self._report_initial_state()

        self.publisher.start()
        self.listener.start()
        logger.info(
            "Device started",
            extra={"device_id": self.settings.device_id, "cadence_ms": self.state.cadence_millis},
        )

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel both waits, close the connector and join the background tasks."""
        self._stop.set()
        self.connector.close()
        self.publisher.join(timeout)
        self.listener.join(timeout)
        logger.info("Device stopped", extra={"device_id": self.settings.device_id})

    def snapshot(self) -> StateSnapshot:
        return self.state.snapshot()

    def _report_initial_state(self) -> None:
        snapshot = self.state.snapshot()
        try:
            self.connector.report_state(
                {
                    "cadenceMillis": snapshot.cadence_millis,
                    "publishEnabled": snapshot.publish_enabled,
                }
            )
        except ConnectorError as exc:
            logger.warning("Could not report initial state", extra={"reason": str(exc)})


@lru_cache
def build_default_device() -> DeviceRuntime:
    """Factory that wires the device to the default loopback hub."""
    return DeviceRuntime(settings=get_settings(), connector=build_default_connector())
