"""Pydantic schemas for the hub HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field


class DeviceStateResponse(BaseModel):
    """Consistent view of the device's shared state."""

    device_id: str
    reading: float
    cadence_millis: int = Field(..., gt=0)
    publish_enabled: bool
    message_sequence: int = Field(..., ge=0)


class CommandInvocation(BaseModel):
    """Body of a command invocation."""

    payload: Optional[Union[float, str]] = Field(
        default=None, description="Command argument, e.g. the reading for set-reading."
    )
    timeout: float = Field(default=30.0, gt=0, description="Seconds to wait for the handler.")


class CommandResponse(BaseModel):
    """Result returned by the device's command handler."""

    name: str
    status: int
    message: str
    payload: Optional[Dict[str, Any]] = None


class DesiredPropertiesPatch(BaseModel):
    properties: Dict[str, Any] = Field(..., description="Desired properties to merge.")


class TwinResponse(BaseModel):
    device_id: str
    desired: Dict[str, Any]
    reported: Dict[str, Any]


class InboundMessageRequest(BaseModel):
    body: str = Field(..., description="Message text delivered to the device.")
    properties: Dict[str, str] = Field(default_factory=dict)


class InboundMessageAccepted(BaseModel):
    message_id: str


class TelemetryResponse(BaseModel):
    """A published telemetry record."""

    device_id: str
    sequence: int = Field(..., ge=1)
    reading: float
    alert: bool
    created_at: datetime
