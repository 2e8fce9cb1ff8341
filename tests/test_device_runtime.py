from __future__ import annotations

import random
import time
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Callable

import pytest

from connectors.loopback import LoopbackConnector
from datastore.mock_twin import MockDeviceTwin
from services.device import DeviceRuntime
from settings import get_settings
from storage.mock_blob import MockBlobContainer


def _wait_for(condition: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


@pytest.fixture
def runtime(tmp_path: Path):
    settings = replace(
        get_settings(),
        device_id="dev-test",
        initial_reading=Decimal("26"),
        cadence_millis=20,
        receive_timeout=0.05,
        upload_source=str(tmp_path / "image1.jpg"),
    )
    hub = LoopbackConnector(
        device_id=settings.device_id,
        twin=MockDeviceTwin(device_id=settings.device_id),
        container=MockBlobContainer(name="uploads", root_path=tmp_path / "blobs"),
        workers=2,
    )
    device = DeviceRuntime(settings=settings, connector=hub, rng=random.Random(3))
    device.start()
    yield device, hub
    device.stop(timeout=2)


def test_start_reports_initial_state_and_publishes(runtime) -> None:
    device, hub = runtime

    assert _wait_for(lambda: len(hub.telemetry()) >= 3)
    reported = hub.twin.reported()
    assert reported["cadenceMillis"] == 20
    assert reported["publishEnabled"] is True

    sequences = [record.sequence for record in hub.telemetry()]
    assert sequences == sorted(sequences)
    assert sequences[0] == 1


def test_commands_and_desired_config_flow_through_the_hub(runtime) -> None:
    device, hub = runtime

    assert hub.invoke_command("set-reading", "42.5").succeeded
    assert _wait_for(lambda: any(record.reading > Decimal("40") for record in hub.telemetry()))

    hub.update_desired({"cadenceMillis": 35})
    assert _wait_for(lambda: device.snapshot().cadence_millis == 35)
    assert _wait_for(lambda: hub.twin.reported().get("cadenceMillis") == 35)

    assert hub.invoke_command("stop").message == "Stop Succeeded"
    time.sleep(0.05)
    count = len(hub.telemetry())
    time.sleep(0.2)
    assert len(hub.telemetry()) == count


def test_upload_command_stores_blob(runtime, tmp_path: Path) -> None:
    device, hub = runtime
    (tmp_path / "image1.jpg").write_bytes(b"picture")

    result = hub.invoke_command("upload")

    assert result.succeeded
    assert result.payload is not None
    blob_name = result.payload["destination"].split("/", 1)[1]
    assert hub.container.get_blob(blob_name) == b"picture"


def test_inbound_messages_are_acknowledged(runtime) -> None:
    device, hub = runtime

    hub.enqueue_message(b"hello")
    hub.enqueue_message(b"\xff\xfe")

    assert _wait_for(lambda: device.listener.handled_count == 2)
    assert hub.pending_messages() == 0


def test_stop_is_prompt_and_start_twice_fails(tmp_path: Path) -> None:
    settings = replace(get_settings(), cadence_millis=60_000, receive_timeout=30.0)
    hub = LoopbackConnector(
        device_id=settings.device_id,
        twin=MockDeviceTwin(device_id=settings.device_id),
        container=MockBlobContainer(name="uploads"),
    )
    device = DeviceRuntime(settings=settings, connector=hub)
    device.start()
    with pytest.raises(RuntimeError):
        device.start()

    started = time.monotonic()
    device.stop(timeout=2)

    assert time.monotonic() - started < 1.5
    assert not device.running
    assert not device.publisher._thread.is_alive()
    assert not device.listener._thread.is_alive()
