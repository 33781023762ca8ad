#!/usr/bin/env python3
"""Shelly BLU Cloud Bridge CLI.

This module runs the bridge that discovers Shelly BLU (Bluetooth) devices
through the Shelly Cloud, registers one accessory per supported device and
keeps their state current from the cloud's realtime websocket stream.

Architecture:
    - TokenManager handles the Shelly Cloud OAuth login flow
    - ShellyCloudClient is the shared HTTP layer (and websocket session)
    - SyncCoordinator owns the registry and routes stream events
    - JsonAccessoryStore persists accessories so restarts restore them

Environment Variables:
    SHELLY_EMAIL: Shelly Cloud account email (required)
    SHELLY_PASSWORD: Shelly Cloud account password (required)
    SHELLY_AUTH_URL: OAuth server (default: https://api.shelly.cloud)
    SHELLY_DEVICE_FAMILY: Device generation to discover (default: GBLE)
    SHELLY_CACHE_FILE: Accessory cache path (default: accessories.json)
    SHELLY_RECONNECT_ON_CLOSE: Reconnect after a clean close (default: true)
    SHELLY_RECONNECT_DELAY: Seconds between reconnect attempts (default: 0)
    SHELLY_LOG_LEVEL: Logging level (default: INFO)

Example Usage:
    $ python main.py                       # Discover, then stream until Ctrl+C
    $ python main.py --once                # Discover, print accessories, exit
    $ python main.py --cache /data/a.json  # Use a different accessory cache
"""
import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Local imports
from src.shelly_blu.api import ConfigurationError, ShellyCloudClient, TokenManager
from src.shelly_blu.sync import DeviceRegistry, HandlerFactory, SyncCoordinator
from src.shelly_blu.sync.adapters import (
    BLU_FAMILY,
    JsonAccessoryStore,
    ShellyCloudSession,
    ShellyDiscoveryClient,
    ShellyStreamClient,
)

logger = logging.getLogger(__name__)

# ============================================
# Configuration
# ============================================

class BridgeConfig:
    """Configuration loaded from environment variables."""

    def __init__(self):
        self.email = os.getenv("SHELLY_EMAIL")
        self.password = os.getenv("SHELLY_PASSWORD")
        self.auth_url = os.getenv("SHELLY_AUTH_URL", "https://api.shelly.cloud")
        self.device_family = os.getenv("SHELLY_DEVICE_FAMILY", BLU_FAMILY)
        self.cache_file = os.getenv("SHELLY_CACHE_FILE", "accessories.json")
        self.reconnect_on_close = os.getenv("SHELLY_RECONNECT_ON_CLOSE", "true").lower() == "true"
        self.reconnect_delay = float(os.getenv("SHELLY_RECONNECT_DELAY", "0"))
        self.log_level = os.getenv("SHELLY_LOG_LEVEL", "INFO").upper()

    def __repr__(self):
        return (
            f"BridgeConfig("
            f"family={self.device_family}, "
            f"cache={self.cache_file}, "
            f"reconnect_on_close={self.reconnect_on_close}, "
            f"reconnect_delay={self.reconnect_delay}s, "
            f"log_level={self.log_level})"
        )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


# ============================================
# Output
# ============================================

def print_accessories(registry: DeviceRegistry) -> None:
    """Print every registered accessory with its characteristic values."""
    print("\n" + "=" * 60)
    print(f"ACCESSORIES ({len(registry)})")
    print("=" * 60)

    for entry in registry:
        accessory = entry.handler.accessory
        print(f"\n{accessory.display_name} [{entry.type_code}] {entry.identity}")
        for service, characteristics in accessory.services.items():
            values = ", ".join(f"{name}={value}" for name, value in characteristics.items())
            print(f"  {service}: {values}")


# ============================================
# Bridge
# ============================================

async def run_bridge(config: BridgeConfig, once: bool = False) -> int:
    """Run discovery and, unless once is set, stream until shutdown.

    Returns:
        Process exit code
    """
    try:
        token_manager = TokenManager(
            email=config.email,
            password=config.password,
            auth_url=config.auth_url,
        )
    except ConfigurationError as e:
        print(f"[Bridge] ERROR: {e.message}")
        return 1

    print(f"[Bridge] Config: {config}")

    async with ShellyCloudClient(token_manager) as client:
        cloud = ShellyCloudSession(client)
        registry = DeviceRegistry()
        host = JsonAccessoryStore(config.cache_file)

        stream = ShellyStreamClient(
            cloud,
            client.session,
            reconnect_on_close=config.reconnect_on_close,
            reconnect_delay=config.reconnect_delay,
            on_state_change=lambda state: logger.debug(f"Stream state: {state.value}"),
        )

        coordinator = SyncCoordinator(
            discovery=ShellyDiscoveryClient(cloud, family=config.device_family),
            stream=stream,
            registry=registry,
            factory=HandlerFactory(),
            host=host,
            stream_on_discovery=not once,
        )

        print("[Bridge] Discovering devices...")
        result = await coordinator.start()
        print(f"[Bridge] Discovery complete: {result.to_dict()}")

        if once:
            print_accessories(registry)
            return 0

        shutdown_event = asyncio.Event()
        _install_signal_handlers(shutdown_event)

        try:
            await _wait_for_shutdown(coordinator, shutdown_event)
        finally:
            print("[Bridge] Stopping event stream...")
            await coordinator.stop()
            print("[Bridge] Shutdown complete")

    return 0


def _install_signal_handlers(shutdown_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def handle_shutdown(signum: int) -> None:
        print(f"\n[Bridge] Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    for signum in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(signum, handle_shutdown, signum)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(signum, lambda s, _frame: handle_shutdown(s))


async def _wait_for_shutdown(
    coordinator: SyncCoordinator,
    shutdown_event: asyncio.Event,
) -> None:
    """Block until a shutdown signal, or until the stream ends on its own."""
    if not coordinator.stream_started:
        print("[Bridge] No devices discovered, idling until shutdown")
        await shutdown_event.wait()
        return

    shutdown_task = asyncio.create_task(shutdown_event.wait())
    stream_task = asyncio.create_task(coordinator.wait())
    done, pending = await asyncio.wait(
        {shutdown_task, stream_task},
        return_when=asyncio.FIRST_COMPLETED,
    )
    # coordinator.wait() shields the stream task, so this only drops the waiters
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)
    if stream_task in done:
        error = stream_task.exception()
        if error is not None:
            print(f"[Bridge] Event stream ended: {error}")
        else:
            print("[Bridge] Event stream ended")


# ============================================
# Main Entry Point
# ============================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bridge Shelly BLU devices from the Shelly Cloud",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                          # Discover and stream until Ctrl+C
  python main.py --once                   # Discover, print accessories, exit
  python main.py --cache accessories.json # Accessory cache location
  python main.py --log-level DEBUG        # Verbose logging
        """
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Discover once, print accessories and exit (no event stream)"
    )
    parser.add_argument(
        "--cache",
        type=str,
        metavar="FILE",
        help="Accessory cache file (overrides SHELLY_CACHE_FILE)"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides SHELLY_LOG_LEVEL)"
    )
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = BridgeConfig()
    if args.cache:
        config.cache_file = args.cache
    if args.log_level:
        config.log_level = args.log_level

    configure_logging(config.log_level)

    print("=" * 60)
    print("Shelly BLU Cloud Bridge")
    print("=" * 60)

    return asyncio.run(run_bridge(config, once=args.once))


if __name__ == "__main__":
    sys.exit(main())
