"""Shelly BLU H&T (temperature and humidity sensor)."""

from typing import Any

from ..domain.accessory import HUMIDITY_SENSOR, TEMPERATURE_SENSOR
from .base import BaseDeviceHandler


class SBHTHandler(BaseDeviceHandler):
    """Maps ``temperature:0``, ``humidity:0`` and ``devicepower:0``."""

    MODEL = "Shelly BLU HT"
    PRIMARY_SERVICE = TEMPERATURE_SENSOR

    def _apply_status(self, payload: dict[str, Any]) -> None:
        self._apply_battery(payload)

        temperature = payload.get("temperature:0")
        if temperature is not None:
            self.accessory.set_characteristic(
                TEMPERATURE_SENSOR, "CurrentTemperature", float(temperature["tC"])
            )

        humidity = payload.get("humidity:0")
        if humidity is not None:
            self.accessory.set_characteristic(
                HUMIDITY_SENSOR, "CurrentRelativeHumidity", float(humidity["rh"])
            )
