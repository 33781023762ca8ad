"""Base class for per-family device handlers.

A handler owns one Accessory and translates the family's raw status
payload into characteristic values. update_status never raises: a
malformed payload for one device must not abort routing for the others.
"""

import logging
from abc import abstractmethod
from typing import Any, Optional

from ..domain.accessory import (
    BATTERY,
    Accessory,
    StatusLowBattery,
)
from ..domain.entities import CachedAccessory, DeviceDescriptor, DeviceIdentity
from ..domain.ports import IDeviceHandler

logger = logging.getLogger(__name__)

# Battery percentages strictly below this are reported as low
LOW_BATTERY_THRESHOLD = 10

DEVICE_POWER_COMPONENT = "devicepower:0"


def low_battery_status(percent: float) -> StatusLowBattery:
    """Translate a battery percentage into the low/normal indicator."""
    if percent < LOW_BATTERY_THRESHOLD:
        return StatusLowBattery.BATTERY_LEVEL_LOW
    return StatusLowBattery.BATTERY_LEVEL_NORMAL


class BaseDeviceHandler(IDeviceHandler):
    """Common lifecycle for device handlers.

    Subclasses set MODEL and PRIMARY_SERVICE and implement _apply_status.
    """

    MODEL: str = "Shelly BLU"
    PRIMARY_SERVICE: str = ""

    def __init__(self, descriptor: DeviceDescriptor, accessory: Optional[Accessory] = None):
        self._identity = descriptor.identity
        self._unique_id = descriptor.unique_id
        self._code = descriptor.code
        self._accessory = accessory or Accessory.create(
            identity=descriptor.identity,
            unique_id=descriptor.unique_id,
            code=descriptor.code,
            model=self.MODEL,
        )

    @classmethod
    def from_cache(cls, cached: CachedAccessory) -> "BaseDeviceHandler":
        """Rebuild a handler for a persisted accessory; no payload needed."""
        accessory = Accessory.create(
            identity=cached.identity,
            unique_id=cached.unique_id,
            code=cached.code,
            model=cls.MODEL,
            display_name=cached.display_name,
        )
        return cls(cached.to_descriptor(), accessory=accessory)

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    @property
    def accessory(self) -> Accessory:
        return self._accessory

    def update_status(self, descriptor: DeviceDescriptor) -> bool:
        if descriptor.identity != self._identity:
            logger.warning(
                f"Refusing status for {descriptor.identity} on handler {self._identity}"
            )
            return False
        if not descriptor.payload:
            logger.debug(f"No payload for {self._code}, nothing to update")
            return False

        logger.debug(f"Update device {self._unique_id} status")
        try:
            self._apply_status(descriptor.payload)
        except Exception as e:
            logger.warning(
                f"Failed to apply status for {self._code} ({self._unique_id}): "
                f"{type(e).__name__}: {e}"
            )
            return False
        return True

    @abstractmethod
    def _apply_status(self, payload: dict[str, Any]) -> None:
        """Translate the payload into characteristic values. May raise."""
        ...

    def _apply_battery(self, payload: dict[str, Any]) -> None:
        """Push battery level and low-battery indicator, if reported."""
        power = payload.get(DEVICE_POWER_COMPONENT)
        if power is None:
            return
        percent = power["battery"]["percent"]
        status = low_battery_status(percent)
        if self.PRIMARY_SERVICE:
            self._accessory.set_characteristic(self.PRIMARY_SERVICE, "StatusLowBattery", status)
        self._accessory.set_characteristic(BATTERY, "BatteryLevel", percent)
        self._accessory.set_characteristic(BATTERY, "StatusLowBattery", status)
