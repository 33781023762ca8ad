"""Use cases layer - Business logic orchestration for sync operations.

This layer contains use case classes that orchestrate the sync workflow:
- Discover devices (via IDiscoveryClient port)
- Reconcile into the registry and register accessories (via IAccessoryHost port)
- Route stream events to handlers (via IStreamClient port)

Use cases depend only on ports, not concrete implementations.
"""

from .sync_coordinator import SyncCoordinator

__all__ = [
    "SyncCoordinator",
]
