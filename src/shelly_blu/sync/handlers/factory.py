"""Type-code dispatch table for device handlers.

The family prefix of a device code (``SBHT`` in ``SBHT-003C``) selects the
handler class. Codes missing from the table are skipped by callers, never
treated as errors, so newer device families pass through untouched.
"""

import logging
from typing import Optional

from ..domain.entities import CachedAccessory, DeviceDescriptor
from .base import BaseDeviceHandler
from .sbdw import SBDWHandler
from .sbht import SBHTHandler

logger = logging.getLogger(__name__)

DEFAULT_HANDLERS: dict[str, type[BaseDeviceHandler]] = {
    "SBDW": SBDWHandler,
    "SBHT": SBHTHandler,
}


class HandlerFactory:
    """Builds the handler variant matching a device's type code."""

    def __init__(self, handlers: Optional[dict[str, type[BaseDeviceHandler]]] = None):
        self._handlers = dict(DEFAULT_HANDLERS if handlers is None else handlers)

    def register(self, type_code: str, handler_cls: type[BaseDeviceHandler]) -> None:
        self._handlers[type_code] = handler_cls

    def resolve(self, type_code: str) -> Optional[type[BaseDeviceHandler]]:
        return self._handlers.get(type_code)

    def supports(self, type_code: str) -> bool:
        return type_code in self._handlers

    @property
    def type_codes(self) -> list[str]:
        return sorted(self._handlers)

    def create(self, descriptor: DeviceDescriptor) -> Optional[BaseDeviceHandler]:
        """Construct a fresh handler, or None for an unknown type code."""
        handler_cls = self.resolve(descriptor.type_code)
        if handler_cls is None:
            logger.debug(f"No handler for type code {descriptor.type_code!r}")
            return None
        return handler_cls(descriptor)

    def restore(self, cached: CachedAccessory) -> Optional[BaseDeviceHandler]:
        """Rebuild a handler for a persisted accessory, or None if unsupported."""
        handler_cls = self.resolve(cached.type_code)
        if handler_cls is None:
            logger.debug(f"Cached accessory {cached.code!r} has no handler, ignoring")
            return None
        return handler_cls.from_cache(cached)

    __call__ = create
