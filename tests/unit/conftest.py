"""
Shared fixtures for unit tests.

This module provides in-memory lights, a scriptable transport and a recording
publisher so bridge components can be tested without a LAN or a broker.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from lifx_bridge.devices import LightDevice, LightTransport
from lifx_bridge.exceptions import DeviceRequestError
from lifx_bridge.registry import DeviceRegistry
from lifx_bridge.structs import DeviceIdentity, PowerState


class FakeLight(LightDevice):
    """LightDevice that keeps its power state in memory."""

    def __init__(self, identity, power=PowerState.OFF, fail_power=False, fail_switch=False):
        super().__init__(identity)
        self.power = power
        self.fail_power = fail_power
        self.fail_switch = fail_switch
        self.switch_calls = []
        self.closed = 0

    async def get_power(self):
        if self.fail_power:
            raise DeviceRequestError(self.address, "GetPower")
        return self.power

    async def turn_on(self):
        await self._switch(PowerState.ON)

    async def turn_off(self):
        await self._switch(PowerState.OFF)

    async def _switch(self, state):
        self.switch_calls.append(state)
        if self.fail_switch:
            raise DeviceRequestError(self.address, "SetPower")
        self.power = state

    async def close(self):
        self.closed += 1


class FakeTransport(LightTransport):
    """Transport returning a scripted list of lights.

    ``discover_error`` / ``create_error`` make the matching call raise instead.
    """

    def __init__(self, lights=None):
        self.lights = list(lights or [])
        self.discover_error = None
        self.create_error = None
        self.discover_calls = []
        self.create_calls = []
        self.created = []

    async def discover_all(self, timeout):
        self.discover_calls.append(timeout)
        if self.discover_error is not None:
            raise self.discover_error
        return list(self.lights)

    async def create_device(self, address, mac):
        self.create_calls.append((address, mac))
        if self.create_error is not None:
            raise self.create_error
        light = FakeLight(DeviceIdentity(address=address, mac=mac))
        self.created.append(light)
        return light


class RecordingPublisher:
    """BusPublisher that records every publish in order."""

    def __init__(self):
        self.published = []

    async def publish_state(self, topic, state):
        self.published.append((topic, state))
        return True


def make_light(name="Lamp", group="Den", location="Home", address="192.168.1.50", mac="d0:73:d5:00:00:01", **kwargs):
    identity = DeviceIdentity(address=address, mac=mac, name=name, group=group, location=location)
    return FakeLight(identity, **kwargs)


@pytest.fixture
def registry():
    """Registry that never evicts, unless a test overrides the limit."""
    return DeviceRegistry(stale_sweep_limit=0)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def mock_aiomqtt_client():
    """
    Mock aiomqtt.Client instance.

    Returns a MagicMock with async connect/publish/subscribe methods.
    """
    client = MagicMock()
    client.__aenter__ = AsyncMock(return_value=client)
    client.__aexit__ = AsyncMock(return_value=None)
    client.publish = AsyncMock()
    client.subscribe = AsyncMock()
    return client


@pytest.fixture
def mock_resolver():
    resolver = MagicMock()
    resolver.resolve = AsyncMock(return_value=None)
    return resolver


@pytest.fixture
def light_factory():
    """Factory building FakeLight instances; keyword arguments override the defaults."""
    return make_light
