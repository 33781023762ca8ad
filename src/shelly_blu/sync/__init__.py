"""Sync module - Clean Architecture implementation for Shelly BLU device sync.

This module discovers Bluetooth (BLU) devices relayed through Shelly
gateways, keeps one handler per device in a registry and applies realtime
status changes from the cloud event stream.

Architecture:
    domain/     - Pure domain entities, schemas, registry and port interfaces
    handlers/   - Per-family status translation (SBHT, SBDW)
    use_cases/  - Discovery, reconciliation and event routing
    adapters/   - Infrastructure implementations (Shelly Cloud, websocket, JSON cache)
"""

from .domain.entities import (
    CachedAccessory,
    ConnectionState,
    DeviceDescriptor,
    DeviceIdentity,
    ReconcileResult,
    RegisteredDevice,
    StatusChange,
)
from .domain.ports import (
    IAccessoryHost,
    ICloudSession,
    IDeviceHandler,
    IDiscoveryClient,
    IStreamClient,
)
from .domain.registry import DeviceRegistry
from .handlers.factory import HandlerFactory
from .use_cases.sync_coordinator import SyncCoordinator

__all__ = [
    # Entities
    "CachedAccessory",
    "ConnectionState",
    "DeviceDescriptor",
    "DeviceIdentity",
    "ReconcileResult",
    "RegisteredDevice",
    "StatusChange",
    # Ports
    "IAccessoryHost",
    "ICloudSession",
    "IDeviceHandler",
    "IDiscoveryClient",
    "IStreamClient",
    # Registry and dispatch
    "DeviceRegistry",
    "HandlerFactory",
    # Use cases
    "SyncCoordinator",
]
