"""Main entrypoint and lifecycle management for the LIFX MQTT bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from functools import partial
from pathlib import Path
from typing import Protocol, cast, runtime_checkable

import dotenv
import uvloop

from lifx_bridge.const import (
    BRIDGE_VERSION,
    HEALTH_SRV_START_TASK_NAME,
    MQTT_CLIENT_START_TASK_NAME,
    RECONCILER_START_TASK_NAME,
)
from lifx_bridge.correlation import correlation_context
from lifx_bridge.devices import LifxTransport
from lifx_bridge.health import HealthServer, HealthState
from lifx_bridge.logging_abstraction import get_logger, quiet_foreign_loggers, set_bridge_level
from lifx_bridge.mqtt import MQTTClient
from lifx_bridge.reconciler import DiscoveryReconciler
from lifx_bridge.registry import DeviceRegistry
from lifx_bridge.resolver import CommandResolver
from lifx_bridge.structs import GlobalObject
from lifx_bridge.utils import send_sigterm, signal_handler

logger = get_logger(__name__)
g = GlobalObject()


@runtime_checkable
class _CLIArgs(Protocol):
    debug: bool
    env: Path | None


class BridgeController:
    """Singleton wiring the registry, reconciler, MQTT client and health server together."""

    lp: str = "BridgeController:"
    _instance: BridgeController | None = None
    _initialized: bool = False

    def __new__(cls, *_args: object, **_kwargs: object) -> BridgeController:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, *_args: object, **_kwargs: object) -> None:
        if getattr(self, "_initialized", False):
            return
        self._initialized = True

        uvloop.install()
        loop = uvloop.new_event_loop()
        g.loop = loop
        asyncio.set_event_loop(loop)

        logger.info(" Initializing LIFX bridge", extra={"version": BRIDGE_VERSION})

        loop.add_signal_handler(signal.SIGINT, partial(signal_handler, signal.SIGINT))
        loop.add_signal_handler(signal.SIGTERM, partial(signal_handler, signal.SIGTERM))
        logger.debug("Signal handlers configured for SIGINT & SIGTERM")

    async def start(self) -> None:
        """Start the discovery reconciler, MQTT client and (optionally) the health server."""
        env = g.env
        tasks: list[asyncio.Task[None]] = []

        registry = DeviceRegistry(stale_sweep_limit=env.stale_sweep_limit)
        transport = LifxTransport(device_timeout=env.device_timeout)
        resolver = CommandResolver(registry, transport, env.topic_prefix, discovery_wait=env.resolve_discovery_wait)
        health = HealthState()
        mqtt_client = MQTTClient(resolver, health=health)
        reconciler = DiscoveryReconciler(
            registry,
            transport,
            mqtt_client,
            env.topic_prefix,
            interval=env.discovery_interval,
            start_delay=env.discovery_start_delay,
            discovery_wait=env.discovery_wait,
        )
        g.registry = registry
        g.health = health
        g.mqtt_client = mqtt_client
        g.reconciler = reconciler

        m_start: asyncio.Task[None] = asyncio.Task(mqtt_client.start(), name=MQTT_CLIENT_START_TASK_NAME)
        r_start: asyncio.Task[None] = asyncio.Task(reconciler.start(), name=RECONCILER_START_TASK_NAME)
        mqtt_client.start_task = m_start
        reconciler.start_task = r_start
        tasks.extend([m_start, r_start])

        if env.health_check_port is not None:
            health_server = HealthServer(health, port=env.health_check_port)
            g.health_server = health_server
            h_start: asyncio.Task[None] = asyncio.Task(health_server.start(), name=HEALTH_SRV_START_TASK_NAME)
            health_server.start_task = h_start
            tasks.append(h_start)

        g.tasks.extend(tasks)
        logger.info(
            " Starting MQTT client and discovery reconciler...",
            extra={"topic_prefix": env.topic_prefix, "broker": f"{env.mqtt_host}:{env.mqtt_port}"},
        )
        try:
            _ = await asyncio.gather(*tasks, return_exceptions=True)
        except Exception as e:
            logger.exception(" Service startup failed", extra={"error": str(e)})
            await self.stop()
            raise

    async def stop(self) -> None:
        logger.info(" Shutting down LIFX bridge...")
        send_sigterm()


def load_env_file(env_file: Path) -> bool:
    """Load ``env_file`` over the current environment and refresh ``g.env``."""
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False
    if not dotenv.load_dotenv(env_path, override=True):
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
        return False
    logger.info(" Environment variables loaded", extra={"source": str(env_path)})
    g.reload_env()
    return True


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the bridge process."""
    parser = argparse.ArgumentParser(description="LIFX LAN to MQTT bridge")
    _ = parser.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    parsed_args = parser.parse_args(argv)
    g.cli_args = parsed_args
    args = cast("_CLIArgs", cast("object", parsed_args))

    if args.debug:
        set_bridge_level(logging.DEBUG)
        logger.info("Debug mode enabled via CLI argument")

    if args.env:
        _ = load_env_file(args.env)
    return parsed_args


def main() -> None:
    """Run the LIFX bridge entry point."""
    with correlation_context("bridge"):
        logger.info("Starting LIFX bridge", extra={"version": BRIDGE_VERSION})
        quiet_foreign_loggers()
        _ = parse_cli()

        if g.env.lifx_debug:
            logger.info("Debug logging enabled via configuration")
            set_bridge_level(logging.DEBUG)

        g.bridge = BridgeController()
        try:
            g.loop.run_until_complete(g.bridge.start())
        except asyncio.CancelledError:
            logger.info("LIFX bridge cancelled, shutting down...")
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        except Exception as e:
            logger.exception(" Fatal error in main loop", extra={"error": str(e)})
        else:
            logger.info(" LIFX bridge stopped gracefully")
        finally:
            if g.loop is not None and not g.loop.is_closed():
                g.loop.close()
            logger.info("LIFX bridge shutdown complete")


if __name__ == "__main__":
    main()
