"""HTTP route definitions for the hub facade."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.schemas import (
    CommandInvocation,
    CommandResponse,
    DesiredPropertiesPatch,
    DeviceStateResponse,
    InboundMessageAccepted,
    InboundMessageRequest,
    TelemetryResponse,
    TwinResponse,
)
from connectors.base import ConnectorError
from connectors.loopback import LoopbackConnector
from services.device import DeviceRuntime, build_default_device

router = APIRouter()


def get_device() -> DeviceRuntime:
    return build_default_device()


def get_hub(device: DeviceRuntime = Depends(get_device)) -> LoopbackConnector:
    connector = device.connector
    if not isinstance(connector, LoopbackConnector):
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail="Hub operations require the loopback connector.",
        )
    if connector.closed:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Device connection is closed.",
        )
    return connector


def _twin_response(hub: LoopbackConnector) -> TwinResponse:
    return TwinResponse(
        device_id=hub.device_id,
        desired=hub.twin.desired(),
        reported=hub.twin.reported(),
    )


@router.get(
    "/device/state",
    response_model=DeviceStateResponse,
    summary="Read the device's current state.",
)
def get_state(device: DeviceRuntime = Depends(get_device)) -> DeviceStateResponse:
    snapshot = device.snapshot()
    return DeviceStateResponse(
        device_id=device.settings.device_id,
        reading=float(snapshot.reading),
        cadence_millis=snapshot.cadence_millis,
        publish_enabled=snapshot.publish_enabled,
        message_sequence=snapshot.message_sequence,
    )


@router.post(
    "/device/commands/{name}",
    response_model=CommandResponse,
    summary="Invoke a command on the device and wait for its result.",
)
def invoke_command(
    name: str,
    invocation: CommandInvocation | None = None,
    hub: LoopbackConnector = Depends(get_hub),
) -> CommandResponse:
    invocation = invocation or CommandInvocation()
    payload = None if invocation.payload is None else str(invocation.payload)
    try:
        result = hub.invoke_command(name, payload, timeout=invocation.timeout)
    except TimeoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=str(exc),
        ) from exc
    except ConnectorError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return CommandResponse(
        name=name,
        status=result.status,
        message=result.message,
        payload=dict(result.payload) if result.payload is not None else None,
    )


@router.get(
    "/device/twin",
    response_model=TwinResponse,
    summary="Fetch the desired and reported property documents.",
)
async def get_twin(hub: LoopbackConnector = Depends(get_hub)) -> TwinResponse:
    return _twin_response(hub)


@router.patch(
    "/device/twin/desired",
    response_model=TwinResponse,
    summary="Merge desired properties and notify the device.",
)
async def patch_desired(
    patch: DesiredPropertiesPatch,
    hub: LoopbackConnector = Depends(get_hub),
) -> TwinResponse:
    if not patch.properties:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No desired properties supplied.",
        )
    try:
        hub.update_desired(patch.properties)
    except ConnectorError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return _twin_response(hub)


@router.post(
    "/device/messages",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=InboundMessageAccepted,
    summary="Queue a message for the device's inbound listener.",
)
async def send_message(
    message: InboundMessageRequest,
    hub: LoopbackConnector = Depends(get_hub),
) -> InboundMessageAccepted:
    message_id = hub.enqueue_message(message.body.encode("utf-8"), message.properties)
    return InboundMessageAccepted(message_id=message_id)


@router.get(
    "/device/telemetry",
    response_model=List[TelemetryResponse],
    summary="List the most recent telemetry records, oldest first.",
)
async def list_telemetry(
    limit: int = Query(20, ge=1, le=1000),
    hub: LoopbackConnector = Depends(get_hub),
) -> List[TelemetryResponse]:
    return [
        TelemetryResponse(
            device_id=record.device_id,
            sequence=record.sequence,
            reading=float(record.reading),
            alert=record.alert,
            created_at=record.created_at,
        )
        for record in hub.telemetry(limit)
    ]


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(device: DeviceRuntime = Depends(get_device)) -> dict[str, str]:
    return {"status": "ok" if device.running else "stopped"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
