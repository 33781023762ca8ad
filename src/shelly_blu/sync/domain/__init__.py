"""Domain layer - Pure domain entities, shape schemas and port interfaces.

This layer contains:
- Entities: identities, descriptors, events and results
- Accessory: the externally visible device representation
- Schemas: pydantic shape validators for cloud payloads
- Ports: Abstract interfaces defining contracts for adapters
- Registry: the identity-keyed device registry

No infrastructure dependencies allowed in this layer.
"""

from .accessory import Accessory, ContactSensorState, StatusLowBattery
from .entities import (
    CachedAccessory,
    ConnectionState,
    DeviceDescriptor,
    DeviceIdentity,
    ReconcileResult,
    RegisteredDevice,
    StatusChange,
)
from .ports import (
    IAccessoryHost,
    ICloudSession,
    IDeviceHandler,
    IDiscoveryClient,
    IStreamClient,
)
from .registry import DeviceRegistry

__all__ = [
    # Entities
    "CachedAccessory",
    "ConnectionState",
    "DeviceDescriptor",
    "DeviceIdentity",
    "ReconcileResult",
    "RegisteredDevice",
    "StatusChange",
    # Accessory
    "Accessory",
    "ContactSensorState",
    "StatusLowBattery",
    # Ports
    "IAccessoryHost",
    "ICloudSession",
    "IDeviceHandler",
    "IDiscoveryClient",
    "IStreamClient",
    # Registry
    "DeviceRegistry",
]
