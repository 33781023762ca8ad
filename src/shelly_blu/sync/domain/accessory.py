"""Externally visible representation of a device.

An Accessory mirrors what a HomeKit-style host exposes: an information
block plus named services, each holding characteristic values. Handlers
write into it; the host persists and publishes it.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Optional

from .entities import DeviceIdentity

MANUFACTURER = "Shelly"


class StatusLowBattery(IntEnum):
    BATTERY_LEVEL_NORMAL = 0
    BATTERY_LEVEL_LOW = 1


class ContactSensorState(IntEnum):
    CONTACT_DETECTED = 0
    CONTACT_NOT_DETECTED = 1


# Service names
ACCESSORY_INFORMATION = "AccessoryInformation"
BATTERY = "Battery"
CONTACT_SENSOR = "ContactSensor"
HUMIDITY_SENSOR = "HumiditySensor"
LIGHT_SENSOR = "LightSensor"
TEMPERATURE_SENSOR = "TemperatureSensor"


@dataclass
class Accessory:
    """In-process accessory model.

    Attributes:
        identity: Registry key, also the accessory UUID
        display_name: Name shown by the host (the device code by default)
        context: Data the host persists with the accessory (unique_id, code)
        services: service name -> characteristic name -> value
    """

    identity: DeviceIdentity
    display_name: str
    context: dict[str, Any] = field(default_factory=dict)
    services: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        identity: DeviceIdentity,
        unique_id: str,
        code: str,
        model: str,
        display_name: Optional[str] = None,
    ) -> "Accessory":
        accessory = cls(
            identity=identity,
            display_name=display_name or code,
            context={"unique_id": unique_id, "code": code},
        )
        accessory.set_characteristic(ACCESSORY_INFORMATION, "Manufacturer", MANUFACTURER)
        accessory.set_characteristic(ACCESSORY_INFORMATION, "Model", model)
        accessory.set_characteristic(ACCESSORY_INFORMATION, "SerialNumber", unique_id)
        return accessory

    @property
    def unique_id(self) -> str:
        return self.context.get("unique_id", "")

    @property
    def code(self) -> str:
        return self.context.get("code", "")

    def has_service(self, service: str) -> bool:
        return service in self.services

    def set_characteristic(self, service: str, name: str, value: Any) -> None:
        """Set a characteristic, adding the service on first use."""
        self.services.setdefault(service, {})[name] = value

    def get_characteristic(self, service: str, name: str, default: Any = None) -> Any:
        return self.services.get(service, {}).get(name, default)
