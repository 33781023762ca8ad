"""Adapters layer - Infrastructure implementations for sync operations.

This layer contains concrete implementations of the ports defined in the domain layer:
- ShellyCloudSession: ShellyCloudClient wrapper implementing ICloudSession
- ShellyDiscoveryClient: bulk /device/all_status discovery implementing IDiscoveryClient
- ShellyStreamClient: reconnecting aiohttp websocket implementing IStreamClient
- JsonAccessoryStore: JSON-file accessory host implementing IAccessoryHost
"""

from .accessory_store import JsonAccessoryStore
from .cloud_session import ShellyCloudSession
from .discovery import BLU_FAMILY, ShellyDiscoveryClient
from .stream import ShellyStreamClient

__all__ = [
    "BLU_FAMILY",
    "JsonAccessoryStore",
    "ShellyCloudSession",
    "ShellyDiscoveryClient",
    "ShellyStreamClient",
]
