"""
Unit tests for mqtt.client module.

Tests MQTTClient connection lifecycle, subscription and publish policy.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import aiomqtt
import pytest

from lifx_bridge.health import HealthState
from lifx_bridge.mqtt.client import MQTTClient
from lifx_bridge.structs import BridgeEnv, PowerState


@pytest.fixture
def bridge_env():
    """Pin the env the client reads so the host environment does not leak in"""
    env = BridgeEnv(
        topic_prefix="lifx",
        mqtt_host="broker.lan",
        mqtt_port=1883,
        mqtt_user="bridge",
        mqtt_pass="secret",
        mqtt_retain=True,
        mqtt_qos=1,
    )
    with patch("lifx_bridge.mqtt.client.g") as mock_g:
        mock_g.env = env
        yield env


@pytest.fixture
def health():
    return HealthState()


@pytest.fixture
def client(bridge_env, mock_resolver, health):
    return MQTTClient(mock_resolver, health=health)


class TestMQTTClientInit:
    """Tests for MQTTClient initialization"""

    def test_reads_settings_from_env(self, client):
        assert client.topic_prefix == "lifx"
        assert client.qos == 1
        assert client.retain is True
        assert client.broker_host == "broker.lan"
        assert client.broker_client_id.startswith("lifx_bridge_")
        assert client.is_connected is False

    def test_connection_delay_floor(self, client, bridge_env):
        bridge_env.mqtt_conn_delay = 0
        assert client._get_connection_delay("test:") == 5
        bridge_env.mqtt_conn_delay = 15
        assert client._get_connection_delay("test:") == 15


class TestConnect:
    """Tests for connect/on_connected/on_disconnected"""

    @pytest.mark.asyncio
    async def test_connect_success(self, client, mock_aiomqtt_client):
        with patch("lifx_bridge.mqtt.client.aiomqtt.Client", return_value=mock_aiomqtt_client) as client_cls:
            assert await client.connect() is True

        client_cls.assert_called_once_with(
            hostname="broker.lan",
            port=1883,
            username="bridge",
            password="secret",
            identifier=client.broker_client_id,
        )
        assert client.is_connected is True

    @pytest.mark.asyncio
    async def test_connect_failure(self, client, mock_aiomqtt_client):
        mock_aiomqtt_client.__aenter__ = AsyncMock(side_effect=aiomqtt.MqttError("Connection refused"))
        with (
            patch("lifx_bridge.mqtt.client.aiomqtt.Client", return_value=mock_aiomqtt_client),
            patch("lifx_bridge.mqtt.client.send_sigterm") as sigterm,
        ):
            assert await client.connect() is False

        sigterm.assert_not_called()
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_bad_credentials_request_shutdown(self, client, mock_aiomqtt_client):
        mock_aiomqtt_client.__aenter__ = AsyncMock(
            side_effect=aiomqtt.MqttError("Connection refused; return code:134"),
        )
        with (
            patch("lifx_bridge.mqtt.client.aiomqtt.Client", return_value=mock_aiomqtt_client),
            patch("lifx_bridge.mqtt.client.send_sigterm") as sigterm,
        ):
            assert await client.connect() is False

        sigterm.assert_called_once()

    @pytest.mark.asyncio
    async def test_on_connected_subscribes_and_reports_healthy(self, client, mock_aiomqtt_client, health):
        client.client = mock_aiomqtt_client

        await client.on_connected()

        mock_aiomqtt_client.subscribe.assert_awaited_once_with("lifx/+/+/+/setPower", qos=1)
        assert health.is_healthy is True

    @pytest.mark.asyncio
    async def test_on_disconnected_reports_unhealthy(self, client, mock_aiomqtt_client, health):
        client.client = mock_aiomqtt_client
        client._connected = True
        health.healthy_event()

        await client.on_disconnected()

        assert client.is_connected is False
        assert health.is_healthy is False
        mock_aiomqtt_client.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_start_loop_reconnects_until_stopped(self, client, mock_aiomqtt_client):
        """A dropped receiver triggers on_disconnected and another connect attempt"""
        attempts = []

        async def _connect():
            attempts.append(1)
            if len(attempts) >= 2:
                client._running = False
            client.client = mock_aiomqtt_client
            client._connected = True
            return True

        client.connect = _connect
        client.command_router.start_receiver_task = AsyncMock(side_effect=aiomqtt.MqttError("lost"))
        with patch("lifx_bridge.mqtt.client.asyncio.sleep", AsyncMock()):
            await client.start()

        assert len(attempts) == 2
        assert mock_aiomqtt_client.subscribe.await_count == 2
        assert client.is_connected is False


class TestPublish:
    """Tests for publish/publish_state"""

    @pytest.mark.asyncio
    async def test_publish_state_uses_retain_and_qos(self, client, mock_aiomqtt_client):
        client.client = mock_aiomqtt_client
        client._connected = True

        assert await client.publish_state("lifx/Home/Den/Lamp", PowerState.ON) is True

        mock_aiomqtt_client.publish.assert_awaited_once_with("lifx/Home/Den/Lamp", b"1", qos=1, retain=True)

    @pytest.mark.asyncio
    async def test_publish_off_payload(self, client, mock_aiomqtt_client):
        client.client = mock_aiomqtt_client
        client._connected = True

        _ = await client.publish_state("lifx/Home/Den/Lamp", PowerState.OFF)

        assert mock_aiomqtt_client.publish.await_args.args[1] == b"0"

    @pytest.mark.asyncio
    async def test_publish_while_disconnected_is_dropped(self, client, mock_aiomqtt_client):
        client.client = mock_aiomqtt_client
        client._connected = False

        assert await client.publish_state("lifx/Home/Den/Lamp", PowerState.ON) is False
        mock_aiomqtt_client.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_publish_error_marks_disconnected(self, client, mock_aiomqtt_client):
        mock_aiomqtt_client.publish = AsyncMock(side_effect=aiomqtt.MqttError("broken pipe"))
        client.client = mock_aiomqtt_client
        client._connected = True

        assert await client.publish("lifx/x", b"1") is False
        assert client.is_connected is False


class TestStop:
    """Tests for stop"""

    @pytest.mark.asyncio
    async def test_stop_disconnects_and_cancels(self, client, mock_aiomqtt_client, health):
        client.client = mock_aiomqtt_client
        client._connected = True
        client.start_task = MagicMock()
        client.start_task.done.return_value = False

        await client.stop()

        mock_aiomqtt_client.__aexit__.assert_awaited_once()
        client.start_task.cancel.assert_called_once()
        assert client.is_connected is False
        assert health.is_healthy is False
