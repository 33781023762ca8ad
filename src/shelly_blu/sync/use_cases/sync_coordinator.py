"""Sync Coordinator Use Case - Orchestrates discovery and event streaming.

This use case owns the device registry and keeps it consistent with the
cloud. It depends on ports (interfaces) for every external operation, so it
is fully testable without a network or a host platform.

Workflow:
1. Restore accessories persisted by a previous run (via IAccessoryHost)
2. Fetch the device snapshot (via IDiscoveryClient)
3. Reconcile: construct handlers for new devices, update existing ones
4. Register new accessories with the host in one batch
5. Start the event stream once devices are known (via IStreamClient)
6. Route each StatusChange to the handler with the matching identity

All registry mutation happens on the event loop thread; the only await
points inside reconciliation are the discovery call and the host batch
registration, and a lock keeps two reconciliations from overlapping.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from ..domain.accessory import Accessory
from ..domain.entities import (
    ReconcileResult,
    RegisteredDevice,
    StatusChange,
)
from ..domain.ports import IAccessoryHost, IDiscoveryClient, IStreamClient
from ..domain.registry import DeviceRegistry
from ..handlers.factory import HandlerFactory

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Orchestrates discovery, reconciliation and event routing.

    Example:
        coordinator = SyncCoordinator(
            discovery=ShellyDiscoveryClient(cloud),
            stream=ShellyStreamClient(cloud, session),
            registry=DeviceRegistry(),
            factory=HandlerFactory(),
            host=JsonAccessoryStore("accessories.json"),
        )
        await coordinator.start()
        await coordinator.wait()
    """

    def __init__(
        self,
        discovery: IDiscoveryClient,
        stream: IStreamClient,
        registry: DeviceRegistry,
        factory: HandlerFactory,
        host: IAccessoryHost,
        stream_on_discovery: bool = True,
    ):
        """Initialize the coordinator with its dependencies.

        Args:
            discovery: Port for bulk device discovery
            stream: Port for the change-notification stream
            registry: Registry this coordinator exclusively writes to
            factory: Type-code dispatch for handler construction
            host: Port for accessory registration and the restore cache
            stream_on_discovery: Start the event stream after a non-empty
                discovery (False for one-shot runs)
        """
        self.discovery = discovery
        self.stream = stream
        self.registry = registry
        self.factory = factory
        self.host = host
        self.stream_on_discovery = stream_on_discovery

        self._discovery_lock = asyncio.Lock()
        self._stream_task: Optional[asyncio.Task] = None

    @property
    def stream_started(self) -> bool:
        return self._stream_task is not None

    # ----------------------------------------
    # Startup
    # ----------------------------------------

    async def start(self) -> ReconcileResult:
        """Restore cached accessories, then run the first discovery."""
        await self.restore_cached()
        return await self.discover_and_reconcile()

    async def restore_cached(self) -> int:
        """Rebuild handlers for accessories persisted by a previous run.

        Returns:
            Number of devices restored into the registry
        """
        try:
            cached_accessories = await self.host.load_cached()
        except Exception as e:
            logger.warning(f"Failed to load cached accessories: {e}")
            return 0

        restored = 0
        for cached in cached_accessories:
            if cached.identity in self.registry:
                continue
            handler = self.factory.restore(cached)
            if handler is None:
                continue
            self.registry.add(
                RegisteredDevice(
                    identity=cached.identity,
                    type_code=cached.type_code,
                    handler=handler,
                )
            )
            restored += 1
            logger.info(f"Restoring existing accessory from cache: {cached.code}")

        return restored

    # ----------------------------------------
    # Discovery
    # ----------------------------------------

    async def discover_and_reconcile(self) -> ReconcileResult:
        """Fetch the device snapshot and reconcile it into the registry.

        Devices absent from the snapshot are never removed. Returns a
        result with success=False when another reconciliation is running.
        """
        started_at = datetime.now(timezone.utc)

        if self._discovery_lock.locked():
            logger.info("Discovery already in progress, skipping")
            return ReconcileResult(
                success=False,
                total=0,
                registered=0,
                updated=0,
                skipped=0,
                synced_at=started_at,
                stream_started=self.stream_started,
                error_details=["Discovery already in progress"],
            )

        async with self._discovery_lock:
            logger.info(f"Starting device discovery at {started_at.isoformat()}")
            descriptors = await self.discovery.fetch_all()

            new_accessories: list[Accessory] = []
            registered = 0
            updated = 0
            skipped = 0
            errors: list[str] = []

            for descriptor in descriptors:
                if not self.factory.supports(descriptor.type_code):
                    logger.debug(f"Skipping unsupported device {descriptor.code}")
                    skipped += 1
                    continue

                existing = self.registry.get(descriptor.identity)
                if existing is not None:
                    if existing.handler.update_status(descriptor):
                        updated += 1
                    continue

                entry = self.registry.upsert(descriptor.identity, descriptor, self.factory)
                if entry is None:
                    skipped += 1
                    continue

                logger.info(f"Adding new accessory: {descriptor.code}")
                new_accessories.append(entry.handler.accessory)
                registered += 1
                if descriptor.has_payload and not entry.handler.update_status(descriptor):
                    errors.append(f"Initial status not applied for {descriptor.code}")

            if new_accessories:
                try:
                    await self.host.register_accessories(new_accessories)
                except Exception as e:
                    logger.error(f"Failed to register {len(new_accessories)} accessory(s) with host: {e}")
                    errors.append(f"Host registration failed: {type(e).__name__}: {e}")

            if descriptors and self.stream_on_discovery:
                self.start_stream()

            result = ReconcileResult(
                success=True,
                total=len(descriptors),
                registered=registered,
                updated=updated,
                skipped=skipped,
                synced_at=started_at,
                stream_started=self.stream_started,
                error_details=errors,
            )
            logger.info(f"Discovery complete: {result.to_dict()}")
            return result

    # ----------------------------------------
    # Streaming
    # ----------------------------------------

    def start_stream(self) -> bool:
        """Start the event stream task. Returns False if it already exists."""
        if self._stream_task is not None:
            return False
        logger.info("Starting event stream")
        self._stream_task = asyncio.create_task(self.stream.run(self.route_event))
        return True

    async def route_event(self, event: StatusChange) -> bool:
        """Deliver a StatusChange to the handler registered under its identity.

        Events for unsupported families or for devices not yet discovered
        are dropped.

        Returns:
            True if a handler applied the status
        """
        if not self.factory.supports(event.type_code):
            logger.debug(f"Dropping event for unsupported device {event.code}")
            return False

        entry = self.registry.get(event.identity)
        if entry is None:
            logger.debug(f"Dropping event for unknown device {event.unique_id}")
            return False

        return entry.handler.update_status(event.to_descriptor())

    # ----------------------------------------
    # Shutdown
    # ----------------------------------------

    async def wait(self) -> None:
        """Wait for the stream task to finish, if one is running.

        Cancelling the caller does not cancel the stream task; only stop()
        ends it.
        """
        if self._stream_task is not None:
            await asyncio.shield(self._stream_task)

    async def stop(self) -> None:
        """Stop the stream and wait for its task to finish."""
        await self.stream.stop()
        task = self._stream_task
        if task is None:
            return
        if task.done():
            if not task.cancelled() and task.exception() is not None:
                logger.warning(f"Event stream ended with error: {task.exception()}")
            return
        try:
            # wait_for cancels the task when the timeout expires
            await asyncio.wait_for(task, timeout=10)
        except asyncio.TimeoutError:
            logger.warning("Event stream did not stop in time, cancelled")
        except Exception as e:
            logger.warning(f"Event stream ended with error: {e}")
