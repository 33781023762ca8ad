"""Domain entities for sync operations.

These are pure data structures with no infrastructure dependencies.
They represent the core objects flowing through the discovery and
streaming pipeline.
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from .ports import IDeviceHandler

# Separates the family prefix from the rest of a device code ("SBHT-003C")
TYPE_CODE_DELIMITER = "-"

# HomeKit accessory UUID layout; x and y consume SHA-1 hex digits in order
UUID_TEMPLATE = "xxxxxxxx-xxxx-4xxx-yxxx-xxxxxxxxxxxx"


def type_code_of(code: str) -> str:
    """Return the family prefix of a device code."""
    return code.split(TYPE_CODE_DELIMITER)[0]


@dataclass(frozen=True)
class DeviceIdentity:
    """Stable opaque key derived from a device's globally unique id.

    The value is built from the SHA-1 hex digest of the id the way HomeKit
    bridges generate accessory UUIDs: digest characters are laid into the
    ``xxxxxxxx-xxxx-4xxx-yxxx-xxxxxxxxxxxx`` template in order, the ``4`` is a
    literal version nibble and ``y`` is a digest character forced into the
    RFC 4122 variant range (8, 9, a or b). Never recomputed from mutable fields.
    """

    value: str

    @classmethod
    def derive(cls, unique_id: str) -> "DeviceIdentity":
        """Derive the identity for a device id. Any input yields an identity."""
        digest = iter(hashlib.sha1(str(unique_id).encode("utf-8")).hexdigest())
        chars = []
        for slot in UUID_TEMPLATE:
            if slot == "x":
                chars.append(next(digest))
            elif slot == "y":
                chars.append(format(int(next(digest), 16) & 0x3 | 0x8, "x"))
            else:
                chars.append(slot)
        return cls("".join(chars))

    def __str__(self) -> str:
        return self.value


@dataclass
class DeviceDescriptor:
    """One device as reported by discovery (or rebuilt from a stream event).

    ``payload`` is the device-family specific component map, e.g.
    ``{"devicepower:0": {...}, "temperature:0": {...}}``. It is opaque here.
    """

    identity: DeviceIdentity
    unique_id: str
    code: str
    payload: Optional[dict[str, Any]] = None

    @classmethod
    def create(
        cls,
        unique_id: str,
        code: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> "DeviceDescriptor":
        return cls(
            identity=DeviceIdentity.derive(unique_id),
            unique_id=unique_id,
            code=code,
            payload=payload,
        )

    @property
    def type_code(self) -> str:
        return type_code_of(self.code)

    @property
    def has_payload(self) -> bool:
        return bool(self.payload)


@dataclass
class StatusChange:
    """A validated state-change notification from the event stream."""

    identity: DeviceIdentity
    unique_id: str
    code: str
    status: dict[str, Any] = field(default_factory=dict)

    @property
    def type_code(self) -> str:
        return type_code_of(self.code)

    def to_descriptor(self) -> DeviceDescriptor:
        """View the event as a descriptor so handlers see one input shape."""
        return DeviceDescriptor(
            identity=self.identity,
            unique_id=self.unique_id,
            code=self.code,
            payload=self.status,
        )


@dataclass
class CachedAccessory:
    """Persisted pair the host keeps to restore a device without a payload."""

    identity: DeviceIdentity
    unique_id: str
    code: str
    display_name: Optional[str] = None

    @property
    def type_code(self) -> str:
        return type_code_of(self.code)

    def to_descriptor(self) -> DeviceDescriptor:
        return DeviceDescriptor(
            identity=self.identity,
            unique_id=self.unique_id,
            code=self.code,
        )


@dataclass
class RegisteredDevice:
    """Registry value: one handler bound to one identity for the process lifetime."""

    identity: DeviceIdentity
    type_code: str
    handler: "IDeviceHandler"


class ConnectionState(str, Enum):
    """States of the event stream connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"
    ERRORED = "errored"


@dataclass
class ReconcileResult:
    """Result of one discovery + reconciliation cycle."""

    success: bool
    total: int
    registered: int
    updated: int
    skipped: int
    synced_at: datetime
    stream_started: bool = False
    error_details: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging and CLI output."""
        return {
            "success": self.success,
            "total": self.total,
            "registered": self.registered,
            "updated": self.updated,
            "skipped": self.skipped,
            "stream_started": self.stream_started,
            "synced_at": self.synced_at.isoformat(),
        }
