"""aiolifx-backed light handle and LAN discovery transport.

aiolifx reports every response through a ``callb(device, response)`` callback
(``response`` is ``None`` once its own retries are exhausted). The helpers below
turn those callbacks into awaitables bounded by ``DEVICE_TIMEOUT``.
"""

from __future__ import annotations

import asyncio
from typing import Any

import aiolifx
from aiolifx.connection import LIFXConnection
from aiolifx.msgtypes import (
    GetGroup,
    GetLabel,
    GetLocation,
    GetPower,
    SetPower,
    StateGroup,
    StateLabel,
    StateLocation,
    StatePower,
)

from lifx_bridge.const import DEVICE_TIMEOUT
from lifx_bridge.exceptions import DeviceRequestError, DiscoveryError
from lifx_bridge.logging_abstraction import get_logger
from lifx_bridge.structs import DeviceIdentity, PowerState

from .base_device import LightDevice, LightTransport

logger = get_logger(__name__)

MAX_POWER_LEVEL = 65535


def decode_label(raw: object) -> str | None:
    """LIFX labels are fixed-width, NUL padded byte strings."""
    if raw is None:
        return None
    if isinstance(raw, bytes | bytearray):
        raw = bytes(raw).decode("utf-8", errors="replace")
    label = str(raw).replace("\x00", "").strip()
    return label or None


def _address_of(device: Any) -> str:
    return str(getattr(device, "ip_addr", "unknown"))


async def _await_callback(device: Any, request_name: str, send: Any, timeout: float) -> Any:
    loop = asyncio.get_running_loop()
    future: asyncio.Future[Any] = loop.create_future()

    def _callb(_device: Any, response: Any) -> None:
        if not future.done():
            future.set_result(response)

    send(_callb)
    try:
        response = await asyncio.wait_for(future, timeout)
    except TimeoutError as exc:
        raise DeviceRequestError(_address_of(device), request_name, f"timed out after {timeout}s") from exc
    if response is None:
        raise DeviceRequestError(_address_of(device), request_name)
    return response


async def lifx_request(device: Any, msg_type: type, response_type: type, timeout: float = DEVICE_TIMEOUT) -> Any:
    """Send a Get* message and return the matching State* response."""
    return await _await_callback(
        device,
        msg_type.__name__,
        lambda callb: device.req_with_resp(msg_type, response_type, callb=callb),
        timeout,
    )


async def lifx_ack(device: Any, msg_type: type, payload: dict[str, Any], timeout: float = DEVICE_TIMEOUT) -> Any:
    """Send a Set* message and wait for the light's acknowledgement."""
    return await _await_callback(
        device,
        msg_type.__name__,
        lambda callb: device.req_with_ack(msg_type, payload, callb=callb),
        timeout,
    )


class LifxLight(LightDevice):
    """Handle to one LIFX light; opens its UDP endpoint on first use."""

    lp: str = "LifxLight:"

    def __init__(self, identity: DeviceIdentity, timeout: float = DEVICE_TIMEOUT) -> None:
        super().__init__(identity)
        self.timeout: float = timeout
        self._connection: LIFXConnection | None = None
        self._connect_lock: asyncio.Lock = asyncio.Lock()

    async def connect(self) -> Any:
        async with self._connect_lock:
            if self._connection is None or self._connection.device is None:
                connection = LIFXConnection(self.address, self.mac)
                try:
                    await connection.async_setup()
                except OSError as exc:
                    raise DeviceRequestError(self.address, "connect", str(exc)) from exc
                self._connection = connection
            return self._connection.device

    async def get_power(self) -> PowerState:
        device = await self.connect()
        response = await lifx_request(device, GetPower, StatePower, self.timeout)
        return PowerState.from_bool(bool(getattr(response, "power_level", 0)))

    async def turn_on(self) -> None:
        await self._switch(on=True)

    async def turn_off(self) -> None:
        await self._switch(on=False)

    async def _switch(self, *, on: bool) -> None:
        device = await self.connect()
        logger.debug("%s %s -> %s", self.lp, self.address, "on" if on else "off")
        await lifx_ack(device, SetPower, {"power_level": MAX_POWER_LEVEL if on else 0}, self.timeout)

    async def close(self) -> None:
        if self._connection is not None:
            self._connection.async_stop()
            self._connection = None


class _DiscoveryCollector:
    """``parent`` for aiolifx.LifxDiscovery; keeps lights in the order they answered."""

    def __init__(self) -> None:
        self.lights: dict[str, Any] = {}

    def register(self, light: Any) -> None:
        self.lights.setdefault(light.mac_addr, light)

    def unregister(self, light: Any) -> None:
        _ = self.lights.pop(light.mac_addr, None)


class LifxTransport(LightTransport):
    """LIFX LAN discovery via broadcast, handles via per-light UDP endpoints."""

    lp: str = "lifx:"

    def __init__(self, device_timeout: float = DEVICE_TIMEOUT) -> None:
        self.device_timeout: float = device_timeout

    async def discover_all(self, timeout: float) -> list[LightDevice]:
        lp = f"{self.lp}discover:"
        loop = asyncio.get_running_loop()
        collector = _DiscoveryCollector()
        discovery = aiolifx.LifxDiscovery(loop, collector)
        try:
            discovery.start()
            await asyncio.sleep(timeout)
            found = list(collector.lights.values())
            logger.debug("%s %d light(s) answered within %ss", lp, len(found), timeout)
            identities = await asyncio.gather(*(self._describe(light) for light in found))
        except OSError as exc:
            raise DiscoveryError(str(exc), timeout) from exc
        finally:
            discovery.cleanup()
        return [LifxLight(identity, self.device_timeout) for identity in identities]

    async def _describe(self, light: Any) -> DeviceIdentity:
        """Read label, location and group; a label that cannot be read stays None."""
        lp = f"{self.lp}describe:"
        requests = ((GetLabel, StateLabel), (GetLocation, StateLocation), (GetGroup, StateGroup))
        results = await asyncio.gather(
            *(lifx_request(light, msg, resp, self.device_timeout) for msg, resp in requests),
            return_exceptions=True,
        )
        labels: list[str | None] = []
        for (msg, _resp), result in zip(requests, results, strict=True):
            if isinstance(result, DeviceRequestError):
                logger.warning("%s %s: %s", lp, msg.__name__, result)
                labels.append(None)
            elif isinstance(result, BaseException):
                raise result
            else:
                labels.append(decode_label(getattr(result, "label", None)))
        name, location, group = labels
        return DeviceIdentity(
            address=_address_of(light),
            mac=str(light.mac_addr),
            name=name,
            location=location,
            group=group,
        )

    async def create_device(self, address: str, mac: str) -> LightDevice:
        light = LifxLight(DeviceIdentity(address=address, mac=mac), self.device_timeout)
        _ = await light.connect()
        return light
