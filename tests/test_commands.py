from __future__ import annotations

from decimal import Decimal

import pytest

from models.records import STATUS_BAD_REQUEST, STATUS_ERROR, STATUS_NOT_FOUND, CommandRequest
from services.commands import CommandDispatcher, DeviceCommands, build_dispatcher, parse_reading
from services.state import DeviceState


@pytest.fixture
def state() -> DeviceState:
    return DeviceState(reading=Decimal("26"))


@pytest.fixture
def dispatcher(state: DeviceState, connector) -> CommandDispatcher:
    return build_dispatcher(DeviceCommands(state=state, connector=connector, upload_source="image1.jpg"))


def _invoke(dispatcher: CommandDispatcher, name: str, payload: str | None = None):
    return dispatcher.dispatch(CommandRequest(name=name, payload=payload))


def test_stop_then_start(dispatcher: CommandDispatcher, state: DeviceState) -> None:
    stopped = _invoke(dispatcher, "stop")
    assert stopped.succeeded and stopped.message == "Stop Succeeded"
    assert state.publish_enabled is False

    started = _invoke(dispatcher, "start")
    assert started.succeeded and started.message == "Start Succeeded"
    assert state.publish_enabled is True


def test_set_reading_accepts_numeric_text(dispatcher: CommandDispatcher, state: DeviceState) -> None:
    result = _invoke(dispatcher, "set-reading", "42.5")

    assert result.succeeded
    assert result.payload == {"reading": 42.5}
    assert state.reading == Decimal("42.5")


def test_set_reading_keeps_every_digit(dispatcher: CommandDispatcher, state: DeviceState) -> None:
    result = _invoke(dispatcher, "set-reading", "26.123456789012345678")

    assert result.succeeded
    assert state.reading == Decimal("26.123456789012345678")
    assert str(state.reading) == "26.123456789012345678"


def test_set_reading_rejects_garbage(dispatcher: CommandDispatcher, state: DeviceState) -> None:
    result = _invoke(dispatcher, "set-reading", "abc")

    assert result.status == STATUS_BAD_REQUEST
    assert not result.succeeded
    assert "not a number" in result.message
    assert state.reading == Decimal("26")


def test_temperature_alias_overrides_reading(dispatcher: CommandDispatcher, state: DeviceState) -> None:
    result = _invoke(dispatcher, "temperature", "31")

    assert result.succeeded
    assert state.reading == Decimal("31")


@pytest.mark.parametrize(
    "payload, expected",
    [
        ("42.5", Decimal("42.5")),
        ('"42.5"', Decimal("42.5")),
        (" -3 ", Decimal("-3")),
        ("1e2", Decimal("100")),
        ("26.123456789012345678", Decimal("26.123456789012345678")),
        ("1e400", Decimal("1E+400")),
    ],
)
def test_parse_reading_accepts(payload: str, expected: Decimal) -> None:
    assert parse_reading(payload) == expected


@pytest.mark.parametrize("payload", [None, "", "abc", "true", "NaN", "Infinity", "[1]", '{"v": 1}'])
def test_parse_reading_rejects(payload: str | None) -> None:
    with pytest.raises(ValueError):
        parse_reading(payload)


def test_upload_uses_default_resource(dispatcher: CommandDispatcher, connector) -> None:
    result = _invoke(dispatcher, "upload")

    assert result.succeeded
    assert connector.uploads == ["image1.jpg"]
    assert result.payload == {"destination": "uploads/image1.jpg"}


def test_upload_uses_named_resource(dispatcher: CommandDispatcher, connector) -> None:
    result = _invoke(dispatcher, "upload", "snapshot.png")

    assert result.succeeded
    assert connector.uploads == ["snapshot.png"]


def test_upload_failure_returns_failure_result(dispatcher: CommandDispatcher, connector) -> None:
    connector.fail_uploads = True

    result = _invoke(dispatcher, "upload")

    assert result.status == STATUS_ERROR
    assert "image1.jpg" in result.message


def test_unknown_command_is_not_found(dispatcher: CommandDispatcher) -> None:
    result = _invoke(dispatcher, "reboot")

    assert result.status == STATUS_NOT_FOUND


def test_handler_exception_becomes_failure() -> None:
    dispatcher = CommandDispatcher()

    def explode(request: CommandRequest):
        raise RuntimeError("boom")

    dispatcher.register("explode", explode)
    result = dispatcher.dispatch(CommandRequest(name="explode"))

    assert result.status == STATUS_ERROR
    assert "boom" in result.message


def test_bind_registers_every_command(dispatcher: CommandDispatcher, connector, state: DeviceState) -> None:
    dispatcher.bind(connector)

    assert set(connector.handlers) == {"start", "stop", "set-reading", "temperature", "upload"}
    result = connector.handlers["stop"](CommandRequest(name="stop"))
    assert result.succeeded
    assert state.publish_enabled is False
