"""Core data structures and typing protocols for the LIFX bridge."""

from __future__ import annotations

import asyncio
import os
from argparse import Namespace
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from pydantic import BaseModel, ConfigDict

from lifx_bridge.const import (
    DEVICE_TIMEOUT,
    DISCOVERY_INTERVAL,
    DISCOVERY_START_DELAY,
    DISCOVERY_WAIT,
    HEALTH_CHECK_PORT,
    LIFX_DEBUG,
    MQTT_CONN_DELAY,
    MQTT_HOST,
    MQTT_PASS,
    MQTT_PORT,
    MQTT_QOS,
    MQTT_RETAIN,
    MQTT_USER,
    RESOLVE_DISCOVERY_WAIT,
    STALE_SWEEP_LIMIT,
    TOPIC_PREFIX,
    env_bool,
    env_float,
    env_int,
)

if TYPE_CHECKING:
    from lifx_bridge.health import HealthServer, HealthState
    from lifx_bridge.reconciler import DiscoveryReconciler
    from lifx_bridge.registry import DeviceRegistry


class PowerState(Enum):
    """On/off as seen on the wire: ``"1"`` / ``"0"``."""

    OFF = "0"
    ON = "1"

    @classmethod
    def from_bool(cls, on: bool) -> PowerState:
        return cls.ON if on else cls.OFF

    @classmethod
    def from_payload(cls, payload: bytes | str) -> PowerState:
        """Only the exact payload ``1`` means on; anything else (empty, padded) is off."""
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        return cls.ON if payload == cls.ON.value else cls.OFF

    @property
    def is_on(self) -> bool:
        return self is PowerState.ON

    @property
    def payload(self) -> bytes:
        return self.value.encode()


class DeviceIdentity(BaseModel):
    """Network identity of a light plus the labels it reported at discovery time.

    Labels are whatever the light reported; any of them may be missing.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    mac: str
    name: str | None = None
    group: str | None = None
    location: str | None = None


class BusPublisher(Protocol):
    """The slice of the MQTT client the reconciler needs."""

    async def publish_state(self, topic: str, state: PowerState) -> bool:
        """Publish a power state with the bridge's retain/QoS policy."""
        ...


class BridgeEnv(BaseModel):
    """Runtime settings, re-read after a ``--env`` file is loaded.

    Logging settings (``LOG_*``) are not included: loggers are configured at import.
    """

    topic_prefix: str = "lifx"
    mqtt_host: str = "localhost"
    mqtt_port: int = 1883
    mqtt_user: str | None = None
    mqtt_pass: str | None = None
    mqtt_retain: bool = True
    mqtt_qos: int = 1
    mqtt_conn_delay: int = 10
    discovery_interval: float = 30.0
    discovery_start_delay: float = 2.0
    discovery_wait: float = 10.0
    resolve_discovery_wait: float = 3.0
    device_timeout: float = 5.0
    stale_sweep_limit: int = 3
    health_check_port: int | None = None
    lifx_debug: bool = False


class GlobalObject:
    """Singleton container for cross-module services."""

    bridge: Any = None
    mqtt_client: Any = None
    registry: DeviceRegistry | None = None
    reconciler: DiscoveryReconciler | None = None
    health: HealthState | None = None
    health_server: HealthServer | None = None
    loop: asyncio.AbstractEventLoop | None = None
    tasks: ClassVar[list[asyncio.Task[Any]]] = []
    env: BridgeEnv = BridgeEnv(
        topic_prefix=TOPIC_PREFIX,
        mqtt_host=MQTT_HOST,
        mqtt_port=MQTT_PORT,
        mqtt_user=MQTT_USER,
        mqtt_pass=MQTT_PASS,
        mqtt_retain=MQTT_RETAIN,
        mqtt_qos=MQTT_QOS,
        mqtt_conn_delay=MQTT_CONN_DELAY,
        discovery_interval=DISCOVERY_INTERVAL,
        discovery_start_delay=DISCOVERY_START_DELAY,
        discovery_wait=DISCOVERY_WAIT,
        resolve_discovery_wait=RESOLVE_DISCOVERY_WAIT,
        device_timeout=DEVICE_TIMEOUT,
        stale_sweep_limit=STALE_SWEEP_LIMIT,
        health_check_port=HEALTH_CHECK_PORT,
        lifx_debug=LIFX_DEBUG,
    )
    cli_args: Namespace | None = None

    _instance: GlobalObject | None = None

    def __new__(cls, *_args: Any, **_kwargs: Any) -> GlobalObject:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def reload_env(self) -> None:
        """Re-evaluate the bridge environment variables into ``self.env``."""
        qos = env_int("MQTT_QOS", 1)
        health_port = env_int("HEALTH_CHECK_PORT", 0)
        self.env = BridgeEnv(
            topic_prefix=os.environ.get("TOPIC_PREFIX") or "lifx",
            mqtt_host=os.environ.get("MQTT_HOST", "localhost"),
            mqtt_port=env_int("MQTT_PORT", 1883),
            mqtt_user=os.environ.get("MQTT_USER") or None,
            mqtt_pass=os.environ.get("MQTT_PASS") or None,
            mqtt_retain=env_bool("MQTT_RETAIN", True),
            mqtt_qos=qos if qos in (0, 1, 2) else 1,
            mqtt_conn_delay=env_int("MQTT_CONN_DELAY", 10),
            discovery_interval=env_float("DISCOVERY_INTERVAL", 30.0),
            discovery_start_delay=env_float("DISCOVERY_START_DELAY", 2.0),
            discovery_wait=env_float("DISCOVERY_WAIT", 10.0),
            resolve_discovery_wait=env_float("RESOLVE_DISCOVERY_WAIT", 3.0),
            device_timeout=env_float("DEVICE_TIMEOUT", 5.0),
            stale_sweep_limit=max(env_int("STALE_SWEEP_LIMIT", 3), 0),
            health_check_port=health_port if health_port > 0 else None,
            lifx_debug=env_bool("LIFX_DEBUG", False),
        )
