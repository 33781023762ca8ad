"""Shelly BLU Door/Window (contact and light sensor)."""

from typing import Any

from ..domain.accessory import CONTACT_SENSOR, LIGHT_SENSOR, ContactSensorState
from .base import BaseDeviceHandler

# HomeKit rejects ambient light levels below this
MIN_LIGHT_LEVEL = 0.0001


class SBDWHandler(BaseDeviceHandler):
    """Maps ``window:0``, ``illuminance:0`` and ``devicepower:0``."""

    MODEL = "Shelly BLU Door/Window"
    PRIMARY_SERVICE = CONTACT_SENSOR

    def _apply_status(self, payload: dict[str, Any]) -> None:
        self._apply_battery(payload)

        window = payload.get("window:0")
        if window is not None:
            is_open = window["open"]
            if not isinstance(is_open, bool):
                raise TypeError(f"window:0.open must be a bool, got {is_open!r}")
            state = (
                ContactSensorState.CONTACT_NOT_DETECTED
                if is_open
                else ContactSensorState.CONTACT_DETECTED
            )
            self.accessory.set_characteristic(CONTACT_SENSOR, "ContactSensorState", state)

        illuminance = payload.get("illuminance:0")
        if illuminance is not None:
            lux = max(float(illuminance["lux"]), MIN_LIGHT_LEVEL)
            self.accessory.set_characteristic(LIGHT_SENSOR, "CurrentAmbientLightLevel", lux)
