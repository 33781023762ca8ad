"""Port interfaces for sync operations.

Ports define the contracts between the coordinator and the infrastructure.
These are abstract base classes that adapters must implement.

Following the Hexagonal Architecture (Ports and Adapters) pattern:
- Ports are interfaces defined in the domain layer
- Adapters implement these ports in the adapters layer
- Use cases depend only on ports, not concrete implementations
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from .accessory import Accessory
from .entities import (
    CachedAccessory,
    ConnectionState,
    DeviceDescriptor,
    DeviceIdentity,
    StatusChange,
)

EventCallback = Callable[[StatusChange], Awaitable[Any]]


class ICloudSession(ABC):
    """Port for the authenticated cloud session.

    Owns authentication and session refresh; the sync pipeline only asks it
    to perform calls and to name the current streaming endpoint.
    """

    @abstractmethod
    async def call(self, path: str) -> dict[str, Any]:
        """Perform one REST call and return the decoded JSON body."""
        ...

    @abstractmethod
    async def get_ws_endpoint(self) -> str:
        """Return the current websocket URL (it may rotate between calls)."""
        ...


class IDiscoveryClient(ABC):
    """Port for bulk device discovery."""

    @abstractmethod
    async def fetch_all(self) -> list[DeviceDescriptor]:
        """Return the current snapshot of supported devices.

        Never raises: any failure yields an empty list.
        """
        ...


class IStreamClient(ABC):
    """Port for the long-lived change-notification stream."""

    @property
    @abstractmethod
    def state(self) -> ConnectionState:
        ...

    @abstractmethod
    async def run(self, on_event: EventCallback) -> None:
        """Connect and deliver StatusChange events until stopped."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop the reconnect loop and close any live connection."""
        ...


class IDeviceHandler(ABC):
    """Capability turning raw status payloads into an accessory representation."""

    @property
    @abstractmethod
    def identity(self) -> DeviceIdentity:
        ...

    @property
    @abstractmethod
    def accessory(self) -> Accessory:
        ...

    @abstractmethod
    def update_status(self, descriptor: DeviceDescriptor) -> bool:
        """Apply a status payload. Never raises; returns False if not applied."""
        ...


class IAccessoryHost(ABC):
    """Port for the host platform that publishes and persists accessories."""

    @abstractmethod
    async def register_accessories(self, accessories: list[Accessory]) -> None:
        """Register newly constructed accessories as one batch."""
        ...

    @abstractmethod
    async def load_cached(self) -> list[CachedAccessory]:
        """Return accessories persisted by a previous run."""
        ...
