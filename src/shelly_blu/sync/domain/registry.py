"""In-memory device registry keyed by DeviceIdentity.

The registry is owned by the SyncCoordinator, which is its only writer.
Every method is synchronous: under the single asyncio event loop no other
task can interleave with a call, so reconciliation and event routing never
observe a half-applied mutation.
"""

import logging
from collections.abc import Callable, Iterator
from typing import Optional

from .entities import (
    DeviceDescriptor,
    DeviceIdentity,
    RegisteredDevice,
)
from .ports import IDeviceHandler

logger = logging.getLogger(__name__)

HandlerFactoryFn = Callable[[DeviceDescriptor], Optional[IDeviceHandler]]


class DeviceRegistry:
    """Mapping from identity to registered device; at most one entry per identity."""

    def __init__(self):
        self._devices: dict[DeviceIdentity, RegisteredDevice] = {}

    def get(self, identity: DeviceIdentity) -> Optional[RegisteredDevice]:
        return self._devices.get(identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._devices

    def __len__(self) -> int:
        return len(self._devices)

    def __iter__(self) -> Iterator[RegisteredDevice]:
        return iter(list(self._devices.values()))

    def values(self) -> list[RegisteredDevice]:
        return list(self._devices.values())

    def upsert(
        self,
        identity: DeviceIdentity,
        descriptor: DeviceDescriptor,
        factory: HandlerFactoryFn,
    ) -> Optional[RegisteredDevice]:
        """Return the entry for identity, constructing it if absent.

        An existing entry is returned unchanged; updating it is the caller's
        job. If the factory cannot build a handler nothing is inserted.
        """
        existing = self._devices.get(identity)
        if existing is not None:
            return existing

        handler = factory(descriptor)
        if handler is None:
            return None

        registered = RegisteredDevice(
            identity=identity,
            type_code=descriptor.type_code,
            handler=handler,
        )
        self._devices[identity] = registered
        logger.debug(f"Registered {descriptor.code} as {identity}")
        return registered

    def add(self, registered: RegisteredDevice) -> RegisteredDevice:
        """Insert a pre-built entry (cache restore). The first entry wins."""
        return self._devices.setdefault(registered.identity, registered)

    def remove(self, identity: DeviceIdentity) -> Optional[RegisteredDevice]:
        """Explicitly drop a device. Never called by the sync pipeline."""
        return self._devices.pop(identity, None)
