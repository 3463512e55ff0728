"""Device and transport interfaces the bridge is written against."""

from __future__ import annotations

from abc import ABC, abstractmethod

from lifx_bridge.structs import DeviceIdentity, PowerState


class LightDevice(ABC):
    """A light the bridge can query and switch."""

    def __init__(self, identity: DeviceIdentity) -> None:
        self.identity: DeviceIdentity = identity

    @property
    def address(self) -> str:
        return self.identity.address

    @property
    def mac(self) -> str:
        return self.identity.mac

    @property
    def name(self) -> str | None:
        return self.identity.name

    @property
    def group(self) -> str | None:
        return self.identity.group

    @property
    def location(self) -> str | None:
        return self.identity.location

    @abstractmethod
    async def get_power(self) -> PowerState: ...

    @abstractmethod
    async def turn_on(self) -> None: ...

    @abstractmethod
    async def turn_off(self) -> None: ...

    async def set_power(self, state: PowerState) -> None:
        if state.is_on:
            await self.turn_on()
        else:
            await self.turn_off()

    async def close(self) -> None:
        """Release any network resources held by the handle."""

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__}: name={self.name!r} group={self.group!r} "
            f"location={self.location!r} ip={self.address} mac={self.mac}>"
        )


class LightTransport(ABC):
    """Discovery and handle creation for one kind of light."""

    @abstractmethod
    async def discover_all(self, timeout: float) -> list[LightDevice]:
        """Scan the network for ``timeout`` seconds and return every light that answered.

        Raises:
            DiscoveryError: the scan could not be run

        """

    @abstractmethod
    async def create_device(self, address: str, mac: str) -> LightDevice:
        """Build a handle for a light known by address and MAC, without a scan.

        Raises:
            LightTransportError: the handle could not be created

        """
