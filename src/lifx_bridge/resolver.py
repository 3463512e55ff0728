"""Resolve a (location, group, name) triple to a light handle."""

from __future__ import annotations

from lifx_bridge.const import RESOLVE_DISCOVERY_WAIT
from lifx_bridge.devices import LightDevice, LightTransport
from lifx_bridge.exceptions import LightTransportError
from lifx_bridge.logging_abstraction import get_logger
from lifx_bridge.registry import DeviceRegistry
from lifx_bridge.topics import encode_topic

logger = get_logger(__name__)


def _same_label(reported: object, requested: object) -> bool:
    return str(reported).casefold() == str(requested).casefold()


def matches_address(device: LightDevice, location: str, group: str, name: str) -> bool:
    """Case-insensitive match on each of name, location and group."""
    return (
        _same_label(device.name, name)
        and _same_label(device.location, location)
        and _same_label(device.group, group)
    )


class CommandResolver:
    """Registry first; a fresh discovery sweep when the registry has nothing.

    A registry hit is returned without checking the light is still there.
    """

    lp: str = "resolver:"

    def __init__(
        self,
        registry: DeviceRegistry,
        transport: LightTransport,
        topic_prefix: str,
        discovery_wait: float = RESOLVE_DISCOVERY_WAIT,
    ) -> None:
        self.registry: DeviceRegistry = registry
        self.transport: LightTransport = transport
        self.topic_prefix: str = topic_prefix
        self.discovery_wait: float = discovery_wait

    async def resolve(self, location: str, group: str, name: str) -> LightDevice | None:
        lp = f"{self.lp}resolve:"
        topic = encode_topic(self.topic_prefix, location, group, name)
        identity = await self.registry.lookup(topic)
        if identity is not None:
            logger.debug("%s registry hit %s -> ip: %s mac: %s", lp, topic, identity.address, identity.mac)
            try:
                return await self.transport.create_device(identity.address, identity.mac)
            except LightTransportError as exc:
                logger.error("%s could not create device for %s: %s", lp, topic, exc)
        return await self._discover(location, group, name)

    async def _discover(self, location: str, group: str, name: str) -> LightDevice | None:
        lp = f"{self.lp}discover:"
        logger.debug("%s searching the network for %s/%s/%s", lp, location, group, name)
        try:
            devices = await self.transport.discover_all(self.discovery_wait)
        except LightTransportError as exc:
            logger.error("%s discover error: %s", lp, exc)
            return None

        matches = [device for device in devices if matches_address(device, location, group, name)]
        for device in devices:
            if not matches or device is not matches[0]:
                await device.close()
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                "%s %d lights match %s/%s/%s, using the first to answer: %s",
                lp,
                len(matches),
                location,
                group,
                name,
                matches,
            )

        found = matches[0]
        await self.registry.register(
            encode_topic(self.topic_prefix, found.location, found.group, found.name),
            found.identity,
        )
        return found
