"""MQTT client core for the LIFX bridge.

Owns the broker connection lifecycle (connect, subscribe, reconnect), the
publish policy (retain/QoS) and hands inbound messages to the CommandRouter.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING

import aiomqtt

from lifx_bridge.const import SET_POWER_COMMAND
from lifx_bridge.logging_abstraction import get_logger
from lifx_bridge.mqtt.command_routing import CommandRouter
from lifx_bridge.structs import GlobalObject, PowerState
from lifx_bridge.topics import command_subscription
from lifx_bridge.utils import send_sigterm

if TYPE_CHECKING:
    from lifx_bridge.health import HealthState
    from lifx_bridge.resolver import CommandResolver

logger = get_logger(__name__)
g = GlobalObject()


class MQTTClient:
    """Broker connection plus the bridge's publish policy."""

    lp: str = "mqtt:"
    start_task: asyncio.Task[None] | None = None

    def __init__(self, resolver: CommandResolver, health: HealthState | None = None) -> None:
        env = g.env
        self.topic_prefix: str = env.topic_prefix
        self.qos: int = env.mqtt_qos
        self.retain: bool = env.mqtt_retain
        self.broker_client_id: str = f"lifx_bridge_{uuid.uuid4().hex[:8]}"
        self.broker_host: str = env.mqtt_host
        self.broker_port: int = env.mqtt_port
        self.client: aiomqtt.Client | None = None
        self.health: HealthState | None = health
        self.command_router: CommandRouter = CommandRouter(self, resolver)
        self._connected: bool = False
        self._running: bool = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _get_connection_delay(self, lp: str) -> int:
        delay = g.env.mqtt_conn_delay
        if delay <= 0:
            logger.debug("%s MQTT connection delay is %s, which is probably a typo, setting to 5...", lp, delay)
            return 5
        return delay

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        self._running = True
        try:
            while self._running:
                if await self.connect():
                    await self.on_connected()
                    try:
                        await self.command_router.start_receiver_task()
                    except aiomqtt.MqttError as msg_err:
                        logger.warning("%s MQTT error: %s", lp, msg_err)
                    await self.on_disconnected()
                if not self._running:
                    break
                delay = self._get_connection_delay(lp)
                logger.info("%s (re)connecting to MQTT broker in %s seconds...", lp, delay)
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s MQTT start() EXCEPTION", lp)

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        env = g.env
        self.broker_host = env.mqtt_host
        self.broker_port = env.mqtt_port
        logger.debug("%s Connecting to MQTT broker %s:%s...", lp, self.broker_host, self.broker_port)
        self.client = aiomqtt.Client(
            hostname=self.broker_host,
            port=self.broker_port,
            username=env.mqtt_user,
            password=env.mqtt_pass,
            identifier=self.broker_client_id,
        )
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as mqtt_err_exc:
            logger.error("%s Connection failed [MqttError]: %s", lp, mqtt_err_exc)
            if "code:134" in str(mqtt_err_exc):
                logger.error(
                    "%s Bad username or password, check your MQTT credentials (username: %s)",
                    lp,
                    env.mqtt_user,
                )
                send_sigterm()
            return False
        self._connected = True
        logger.info("%s Connected to MQTT broker: %s port: %s", lp, self.broker_host, self.broker_port)
        return True

    async def on_connected(self) -> None:
        """Subscribe to power commands and report healthy."""
        lp = f"{self.lp}on_connected:"
        assert self.client is not None, "client must be initialized"
        subscription = command_subscription(self.topic_prefix, SET_POWER_COMMAND)
        await self.client.subscribe(subscription, qos=self.qos)
        logger.info("%s MQTT Connected, subscribed to %s", lp, subscription)
        if self.health is not None:
            self.health.healthy_event()

    async def on_disconnected(self) -> None:
        lp = f"{self.lp}on_disconnected:"
        self._connected = False
        logger.error("%s Reconnecting...", lp)
        if self.health is not None:
            self.health.unhealthy_event()
        await self._close_client()

    async def _close_client(self) -> None:
        if self.client is None:
            return
        try:
            _ = await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as ce:
            logger.debug("%s MQTT disconnect failed: %s", self.lp, ce)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        self._running = False
        await self.command_router.cancel_pending()
        if self._connected:
            logger.debug("%s Disconnecting from broker...", lp)
            await self._close_client()
            logger.info("%s Disconnected from MQTT broker", lp)
        self._connected = False
        if self.health is not None:
            self.health.unhealthy_event()
        if self.start_task and not self.start_task.done():
            logger.debug("%s FINISHING: Cancelling start task", lp)
            _ = self.start_task.cancel()

    async def publish(self, topic: str, msg_data: bytes, *, qos: int = 0, retain: bool = False) -> bool:
        """Publish a message; returns False (and marks the link down) on failure."""
        lp = f"{self.lp}publish:"
        if not self._connected or self.client is None:
            logger.debug("%s not connected, dropping %s", lp, topic)
            return False
        try:
            _ = await self.client.publish(topic, msg_data, qos=qos, retain=retain)
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s [MqttError] -> %s", lp, mqtt_err)
            self._connected = False
        else:
            return True
        return False

    async def publish_state(self, topic: str, state: PowerState) -> bool:
        """Publish ``"1"``/``"0"`` with the configured retain flag and QoS."""
        return await self.publish(topic, state.payload, qos=self.qos, retain=self.retain)
