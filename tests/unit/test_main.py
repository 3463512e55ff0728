"""
Unit tests for main module.

Tests CLI parsing, env file loading and service wiring.
"""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from lifx_bridge.main import BridgeController, load_env_file, parse_cli
from lifx_bridge.structs import GlobalObject


@pytest.fixture
def restore_env():
    g = GlobalObject()
    original = g.env
    yield g
    g.env = original
    g.cli_args = None


class TestParseCli:
    """Tests for parse_cli"""

    def test_defaults(self, restore_env):
        args = parse_cli([])

        assert args.debug is False
        assert args.env is None
        assert restore_env.cli_args is args

    def test_debug_flag_raises_log_level(self, restore_env):
        with patch("lifx_bridge.main.set_bridge_level") as set_level:
            args = parse_cli(["-D"])

        assert args.debug is True
        set_level.assert_called_once_with(logging.DEBUG)

    def test_env_file_loaded(self, restore_env, tmp_path, monkeypatch):
        env_file = tmp_path / "bridge.env"
        env_file.write_text("TOPIC_PREFIX=house/lifx\nMQTT_HOST=mqtt.lan\n")
        # placeholders so monkeypatch restores whatever the file overwrites
        monkeypatch.setenv("TOPIC_PREFIX", "lifx")
        monkeypatch.setenv("MQTT_HOST", "localhost")

        _ = parse_cli(["--env", str(env_file)])

        assert restore_env.env.topic_prefix == "house/lifx"
        assert restore_env.env.mqtt_host == "mqtt.lan"

    def test_env_file_reloads_runtime_settings(self, restore_env, tmp_path, monkeypatch):
        env_file = tmp_path / "bridge.env"
        env_file.write_text("HEALTH_CHECK_PORT=8099\nDISCOVERY_INTERVAL=12.5\nSTALE_SWEEP_LIMIT=0\nLIFX_DEBUG=yes\n")
        for name in ("HEALTH_CHECK_PORT", "DISCOVERY_INTERVAL", "STALE_SWEEP_LIMIT", "LIFX_DEBUG"):
            monkeypatch.setenv(name, "")

        _ = parse_cli(["--env", str(env_file)])

        assert restore_env.env.health_check_port == 8099
        assert restore_env.env.discovery_interval == 12.5
        assert restore_env.env.stale_sweep_limit == 0
        assert restore_env.env.lifx_debug is True


class TestLoadEnvFile:
    """Tests for load_env_file"""

    def test_missing_file(self, restore_env, tmp_path):
        assert load_env_file(tmp_path / "nope.env") is False

    def test_empty_file(self, restore_env, tmp_path):
        env_file = tmp_path / "empty.env"
        env_file.write_text("")

        assert load_env_file(env_file) is False


class TestBridgeControllerStart:
    """Tests for BridgeController.start wiring"""

    @pytest.mark.asyncio
    async def test_start_wires_services(self, restore_env):
        controller = object.__new__(BridgeController)
        g = restore_env
        g.env = g.env.model_copy(update={"health_check_port": None})
        g.tasks.clear()
        with (
            patch("lifx_bridge.main.MQTTClient") as mqtt_cls,
            patch("lifx_bridge.main.DiscoveryReconciler") as reconciler_cls,
        ):
            mqtt_cls.return_value.start = AsyncMock()
            reconciler_cls.return_value.start = AsyncMock()
            await BridgeController.start(controller)

        mqtt_cls.return_value.start.assert_awaited_once()
        reconciler_cls.return_value.start.assert_awaited_once()
        args = reconciler_cls.call_args.args
        # reconciler publishes through the MQTT client
        assert args[2] is mqtt_cls.return_value
        assert args[3] == g.env.topic_prefix
        assert g.reconciler is reconciler_cls.return_value
        assert g.health_server is None
        assert [t.get_name() for t in g.tasks] == ["MQTTClient_START", "DiscoveryReconciler_START"]
        g.tasks.clear()
        g.reconciler = None
        g.mqtt_client = None

    @pytest.mark.asyncio
    async def test_start_with_health_server(self, restore_env):
        controller = object.__new__(BridgeController)
        g = restore_env
        g.env = g.env.model_copy(update={"health_check_port": 8099})
        g.tasks.clear()
        with (
            patch("lifx_bridge.main.MQTTClient") as mqtt_cls,
            patch("lifx_bridge.main.DiscoveryReconciler") as reconciler_cls,
            patch("lifx_bridge.main.HealthServer") as health_cls,
        ):
            mqtt_cls.return_value.start = AsyncMock()
            reconciler_cls.return_value.start = AsyncMock()
            health_cls.return_value.start = AsyncMock()
            await BridgeController.start(controller)

        assert health_cls.call_args.kwargs["port"] == 8099
        health_cls.return_value.start.assert_awaited_once()
        assert len(g.tasks) == 3
        g.tasks.clear()
        g.reconciler = None
        g.mqtt_client = None
        g.health_server = None

    @pytest.mark.asyncio
    async def test_start_passes_runtime_settings(self, restore_env):
        controller = object.__new__(BridgeController)
        g = restore_env
        g.tasks.clear()
        g.env = g.env.model_copy(
            update={
                "health_check_port": None,
                "stale_sweep_limit": 0,
                "device_timeout": 1.5,
                "resolve_discovery_wait": 4.0,
                "discovery_interval": 60.0,
                "discovery_start_delay": 0.5,
                "discovery_wait": 7.0,
            }
        )
        with (
            patch("lifx_bridge.main.DeviceRegistry") as registry_cls,
            patch("lifx_bridge.main.LifxTransport") as transport_cls,
            patch("lifx_bridge.main.CommandResolver") as resolver_cls,
            patch("lifx_bridge.main.MQTTClient") as mqtt_cls,
            patch("lifx_bridge.main.DiscoveryReconciler") as reconciler_cls,
        ):
            mqtt_cls.return_value.start = AsyncMock()
            reconciler_cls.return_value.start = AsyncMock()
            await BridgeController.start(controller)

        registry_cls.assert_called_once_with(stale_sweep_limit=0)
        transport_cls.assert_called_once_with(device_timeout=1.5)
        assert resolver_cls.call_args.kwargs == {"discovery_wait": 4.0}
        assert reconciler_cls.call_args.kwargs == {"interval": 60.0, "start_delay": 0.5, "discovery_wait": 7.0}
        g.tasks.clear()
        g.registry = None
        g.reconciler = None
        g.mqtt_client = None

    def test_singleton(self):
        with patch.object(BridgeController, "_instance", MagicMock()) as existing:
            assert BridgeController.__new__(BridgeController) is existing

    @pytest.mark.asyncio
    async def test_stop_sends_sigterm(self):
        controller = object.__new__(BridgeController)
        with patch("lifx_bridge.main.send_sigterm") as sigterm:
            await BridgeController.stop(controller)

        sigterm.assert_called_once()
