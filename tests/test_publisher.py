from __future__ import annotations

import logging
import random
import threading
import time
from decimal import Decimal
from typing import List

from models.records import CommandRequest
from services.commands import DeviceCommands
from services.config_sync import ConfigSyncHandler
from services.generator import ReadingGenerator
from services.publisher import TelemetryPublisher
from services.state import DeviceState


class RecordingWait:
    """Stands in for ``Event.wait``: records each requested delay and stops after ``cycles``."""

    def __init__(self, cycles: int, on_wait=None) -> None:
        self.cycles = cycles
        self.delays: List[float] = []
        self.on_wait = on_wait

    def __call__(self, seconds: float) -> bool:
        self.delays.append(seconds)
        if self.on_wait is not None:
            self.on_wait(len(self.delays))
        return len(self.delays) >= self.cycles


def _publisher(connector, state: DeviceState, wait=None) -> TelemetryPublisher:
    return TelemetryPublisher(
        device_id="dev-1",
        state=state,
        connector=connector,
        generator=ReadingGenerator("signed"),
        alert_threshold=Decimal("30"),
        rng=random.Random(7),
        wait=wait,
    )


def test_publish_once_builds_record_from_committed_state(connector) -> None:
    state = DeviceState(reading=Decimal("26"))
    publisher = _publisher(connector, state)

    record = publisher.publish_once()

    assert record is not None
    assert connector.sent == [record]
    assert record.device_id == "dev-1"
    assert record.sequence == 1
    assert record.reading == state.reading
    assert record.alert is False
    assert record.to_payload()["messageId"] == 1


def test_alert_flag_follows_threshold(connector) -> None:
    state = DeviceState(reading=Decimal("45"))
    publisher = _publisher(connector, state)

    record = publisher.publish_once()

    assert record is not None and record.alert is True


def test_send_failure_is_logged_and_loop_continues(connector, caplog) -> None:
    connector.fail_sends = 1
    state = DeviceState()
    publisher = _publisher(connector, state, wait=RecordingWait(cycles=3))

    with caplog.at_level(logging.WARNING, logger="services.publisher"):
        publisher.run()

    assert publisher.failed_count == 1
    assert publisher.sent_count == 2
    assert connector.sent_sequences() == [2, 3]
    assert "Telemetry send failed" in caplog.text


def test_waits_use_the_cadence_current_at_each_cycle(connector) -> None:
    state = DeviceState(cadence_millis=5000)

    def push_cadence(cycle: int) -> None:
        if cycle == 1:
            state.set_cadence(1500)
        elif cycle == 2:
            state.set_cadence(-10)

    wait = RecordingWait(cycles=3, on_wait=push_cadence)
    _publisher(connector, state, wait=wait).run()

    assert wait.delays == [5.0, 1.5, 1.5]


def test_unexpected_send_error_does_not_stop_the_loop(connector, caplog) -> None:
    connector.fail_sends = 1
    connector.send_error = ValueError("serializer bug")
    state = DeviceState()
    publisher = _publisher(connector, state, wait=RecordingWait(cycles=3))

    with caplog.at_level(logging.WARNING, logger="services.publisher"):
        publisher.run()

    assert publisher.failed_count == 1
    assert connector.sent_sequences() == [2, 3]
    assert "Telemetry send failed unexpectedly" in caplog.text
    assert "Telemetry publisher crashed" not in caplog.text


def test_desired_cadence_sets_the_next_wait(connector) -> None:
    state = DeviceState(cadence_millis=5000)
    config_sync = ConfigSyncHandler(state, connector)

    def push_desired(cycle: int) -> None:
        if cycle == 1:
            config_sync({"cadenceMillis": 250, "$version": 2})

    wait = RecordingWait(cycles=3, on_wait=push_desired)
    _publisher(connector, state, wait=wait).run()

    assert wait.delays == [5.0, 0.25, 0.25]
    assert connector.reported == [{"cadenceMillis": 250}]


def test_oversized_desired_cadence_keeps_publisher_alive(connector) -> None:
    state = DeviceState(cadence_millis=10)
    publisher = _publisher(connector, state)
    publisher.start()
    try:
        assert ConfigSyncHandler(state, connector)({"cadenceMillis": 10**16}) is None
        count = len(connector.sent)
        time.sleep(0.2)

        assert publisher._thread is not None and publisher._thread.is_alive()
        assert len(connector.sent) > count
        assert state.cadence_millis == 10
    finally:
        publisher.stop()
        publisher.join(timeout=2)


def test_no_sends_while_disabled_and_resume_after_start(connector) -> None:
    state = DeviceState()
    commands = DeviceCommands(state=state, connector=connector, upload_source="image1.jpg")

    def toggle(cycle: int) -> None:
        if cycle == 1:
            commands.stop(CommandRequest(name="stop"))
        elif cycle == 5:
            commands.start(CommandRequest(name="start"))

    wait = RecordingWait(cycles=6, on_wait=toggle)
    _publisher(connector, state, wait=wait).run()

    # Cycle 1 publishes, cycles 2-5 are disabled, cycle 6 publishes again.
    assert state.publish_enabled is True
    assert connector.sent_sequences() == [1, 2]
    assert len(wait.delays) == 6


def test_sequences_strictly_increase_under_concurrent_commands(connector) -> None:
    state = DeviceState(cadence_millis=1)
    commands = DeviceCommands(state=state, connector=connector, upload_source="image1.jpg")
    publisher = _publisher(connector, state)
    stop = threading.Event()

    def hammer() -> None:
        value = 0
        while not stop.is_set():
            commands.set_reading(CommandRequest(name="set-reading", payload=str(value)))
            value += 1

    workers = [threading.Thread(target=hammer) for _ in range(3)]
    for worker in workers:
        worker.start()
    publisher.start()
    time.sleep(0.3)
    publisher.stop()
    publisher.join(timeout=2)
    stop.set()
    for worker in workers:
        worker.join()

    sequences = connector.sent_sequences()
    assert sequences
    assert sequences == list(range(1, len(sequences) + 1))


def test_stop_interrupts_a_long_wait(connector) -> None:
    state = DeviceState(cadence_millis=60_000)
    publisher = _publisher(connector, state)

    publisher.start()
    time.sleep(0.1)
    started = time.monotonic()
    publisher.stop()
    publisher.join(timeout=2)

    assert time.monotonic() - started < 1.0
    assert connector.sent_sequences() == [1]
