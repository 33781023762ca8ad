"""Pydantic shape validators for cloud payloads.

Every payload coming from the cloud (the bulk status response and each
websocket frame) is validated here before any field is read. The parse_*
helpers return None on a shape mismatch instead of raising: a payload that
does not match is ignored, not treated as a protocol error.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .entities import DeviceIdentity, StatusChange

logger = logging.getLogger(__name__)

# Key of the device-info block inside each devices_status entry
DEVICE_INFO_KEY = "_dev_info"


class DeviceInfo(BaseModel):
    """The ``_dev_info`` block of one devices_status entry."""

    model_config = ConfigDict(extra="allow")

    id: str
    code: str
    gen: Optional[str] = None


class AllStatusData(BaseModel):
    model_config = ConfigDict(extra="allow")

    devices_status: dict[str, Any] = Field(default_factory=dict)


class AllStatusResponse(BaseModel):
    """Response of ``/device/all_status``.

    Entries of devices_status are kept raw; each one is validated on its own
    with parse_device_info so one malformed device cannot hide the others.
    """

    model_config = ConfigDict(extra="allow")

    isok: bool
    data: Optional[AllStatusData] = None

    @property
    def devices_status(self) -> dict[str, Any]:
        if self.data is None:
            return {}
        return self.data.devices_status


class StreamDevice(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    code: str


class StatusOnChangeMessage(BaseModel):
    """A realtime frame announcing new device status."""

    model_config = ConfigDict(extra="allow")

    event: Optional[str] = None
    device: StreamDevice
    status: dict[str, Any]


def parse_all_status(payload: Any) -> Optional[AllStatusResponse]:
    """Validate a bulk status response. Returns None on shape mismatch."""
    try:
        return AllStatusResponse.model_validate(payload)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed all_status response: {e.error_count()} error(s)")
        return None


def parse_device_info(entry: Any) -> Optional[DeviceInfo]:
    """Validate the ``_dev_info`` block of one devices_status entry."""
    if not isinstance(entry, dict):
        return None
    try:
        return DeviceInfo.model_validate(entry.get(DEVICE_INFO_KEY))
    except ValidationError:
        return None


def parse_status_change(payload: Any) -> Optional[StatusChange]:
    """Validate a websocket frame as a StatusChange event."""
    try:
        message = StatusOnChangeMessage.model_validate(payload)
    except ValidationError:
        logger.debug("Ignoring stream frame that is not a status change")
        return None

    return StatusChange(
        identity=DeviceIdentity.derive(message.device.id),
        unique_id=message.device.id,
        code=message.device.code,
        status=message.status,
    )
