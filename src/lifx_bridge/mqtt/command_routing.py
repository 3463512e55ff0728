"""MQTT command routing: inbound topic -> resolved light -> power command."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from lifx_bridge.const import SET_POWER_COMMAND
from lifx_bridge.correlation import correlation_context
from lifx_bridge.exceptions import LightTransportError
from lifx_bridge.logging_abstraction import get_logger
from lifx_bridge.structs import PowerState
from lifx_bridge.topics import command_suffix, decode_topic

if TYPE_CHECKING:
    from lifx_bridge.devices import LightDevice
    from lifx_bridge.mqtt.client import MQTTClient
    from lifx_bridge.resolver import CommandResolver

logger = get_logger(__name__)


class RouteOutcome(StrEnum):
    DISPATCHED = "dispatched"
    UNRESOLVED = "unresolved"
    UNKNOWN_COMMAND = "unknown_command"


def normalize_payload(payload: object) -> bytes:
    if payload is None:
        return b""
    if isinstance(payload, bytes | bytearray):
        return bytes(payload)
    return str(payload).encode()


class CommandRouter:
    """Turns inbound MQTT messages into light commands.

    Every message is handled in its own task so a slow discovery fallback for
    one light never holds up messages for another.
    """

    def __init__(self, mqtt_client: MQTTClient, resolver: CommandResolver) -> None:
        self.client: MQTTClient = mqtt_client
        self.resolver: CommandResolver = resolver
        self._tasks: set[asyncio.Task[Any]] = set()

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight message and device command."""
        while self._tasks:
            _ = await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_pending(self) -> None:
        for task in list(self._tasks):
            _ = task.cancel()
        await self.drain()

    async def start_receiver_task(self) -> None:
        """Read messages until the connection drops (MqttError propagates to the client)."""
        lp = f"{self.client.lp}rcv:"
        assert self.client.client is not None, "client must be initialized"
        async for message in self.client.client.messages:
            topic = str(message.topic.value)
            payload = normalize_payload(message.payload)
            logger.debug("%s >>> %s = %s", lp, topic, payload)
            _ = self._spawn(self.handle_message(topic, payload), name=f"route:{topic}")

    async def handle_message(self, topic: str, payload: bytes) -> RouteOutcome:
        lp = f"{self.client.lp}route:"
        with correlation_context("msg"):
            location, group, label = decode_topic(topic)
            device = await self.resolver.resolve(location, group, label)
            if device is None:
                logger.error(
                    "%s Could not find device",
                    lp,
                    extra={"label": label, "group": group, "location": location},
                )
                return RouteOutcome.UNRESOLVED

            suffix = command_suffix(topic)
            if suffix != SET_POWER_COMMAND:
                logger.error("%s Unknown command: %s", lp, suffix, extra={"topic": topic})
                await device.close()
                return RouteOutcome.UNKNOWN_COMMAND

            state = PowerState.from_payload(payload)
            logger.info("%s %s -> %s", lp, topic, "on" if state.is_on else "off")
            _ = self._spawn(self._dispatch(device, state), name=f"dispatch:{topic}")
            return RouteOutcome.DISPATCHED

    async def _dispatch(self, device: LightDevice, state: PowerState) -> None:
        lp = f"{self.client.lp}dispatch:"
        try:
            await device.set_power(state)
        except LightTransportError as exc:
            logger.warning("%s %r did not take the command: %s", lp, device, exc)
        finally:
            await device.close()
