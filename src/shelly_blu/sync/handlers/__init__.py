"""Device handlers - one variant per supported Shelly BLU family.

- SBHTHandler: BLU H&T temperature/humidity sensor
- SBDWHandler: BLU Door/Window contact/light sensor
- HandlerFactory: type-code dispatch table over the variants
"""

from .base import LOW_BATTERY_THRESHOLD, BaseDeviceHandler, low_battery_status
from .factory import DEFAULT_HANDLERS, HandlerFactory
from .sbdw import SBDWHandler
from .sbht import SBHTHandler

__all__ = [
    "BaseDeviceHandler",
    "DEFAULT_HANDLERS",
    "HandlerFactory",
    "LOW_BATTERY_THRESHOLD",
    "SBDWHandler",
    "SBHTHandler",
    "low_battery_status",
]
