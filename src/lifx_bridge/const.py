import os

from lifx_bridge import __version__

__all__ = [
    "BRIDGE_VERSION",
    "DEVICE_TIMEOUT",
    "DISCOVERY_INTERVAL",
    "DISCOVERY_START_DELAY",
    "DISCOVERY_WAIT",
    "HEALTH_CHECK_PORT",
    "HEALTH_SRV_HOST",
    "HEALTH_SRV_START_TASK_NAME",
    "LIFX_DEBUG",
    "LOG_FORMAT",
    "LOG_HUMAN_OUTPUT",
    "LOG_JSON_FILE",
    "MQTT_CLIENT_START_TASK_NAME",
    "MQTT_CONN_DELAY",
    "MQTT_HOST",
    "MQTT_PASS",
    "MQTT_PORT",
    "MQTT_QOS",
    "MQTT_RETAIN",
    "MQTT_USER",
    "OFF_PAYLOAD",
    "ON_PAYLOAD",
    "RECONCILER_START_TASK_NAME",
    "RESOLVE_DISCOVERY_WAIT",
    "SET_POWER_COMMAND",
    "STALE_SWEEP_LIMIT",
    "TOPIC_PREFIX",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", "on")
BRIDGE_VERSION: str = __version__


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.casefold() in YES_ANSWER


# Topic scheme
_topic_prefix = os.environ.get("TOPIC_PREFIX")
TOPIC_PREFIX: str = _topic_prefix if _topic_prefix else "lifx"
SET_POWER_COMMAND: str = "setPower"
ON_PAYLOAD: bytes = b"1"
OFF_PAYLOAD: bytes = b"0"

# MQTT
MQTT_HOST: str = os.environ.get("MQTT_HOST", "localhost")
MQTT_PORT: int = env_int("MQTT_PORT", 1883)
MQTT_USER: str | None = os.environ.get("MQTT_USER") or None
MQTT_PASS: str | None = os.environ.get("MQTT_PASS") or None
MQTT_RETAIN: bool = env_bool("MQTT_RETAIN", True)
_qos = env_int("MQTT_QOS", 1)
MQTT_QOS: int = _qos if _qos in (0, 1, 2) else 1
MQTT_CONN_DELAY: int = env_int("MQTT_CONN_DELAY", 10)

# Discovery / reconciliation (seconds)
DISCOVERY_INTERVAL: float = env_float("DISCOVERY_INTERVAL", 30.0)
DISCOVERY_START_DELAY: float = env_float("DISCOVERY_START_DELAY", 2.0)
DISCOVERY_WAIT: float = env_float("DISCOVERY_WAIT", 10.0)
RESOLVE_DISCOVERY_WAIT: float = env_float("RESOLVE_DISCOVERY_WAIT", 3.0)
DEVICE_TIMEOUT: float = env_float("DEVICE_TIMEOUT", 5.0)
# 0 keeps vanished devices forever
STALE_SWEEP_LIMIT: int = max(env_int("STALE_SWEEP_LIMIT", 3), 0)

# Health check endpoint, disabled unless a port is given
_health_port = env_int("HEALTH_CHECK_PORT", 0)
HEALTH_CHECK_PORT: int | None = _health_port if _health_port > 0 else None
HEALTH_SRV_HOST: str = os.environ.get("HEALTH_SRV_HOST", "0.0.0.0")

LIFX_DEBUG: bool = env_bool("LIFX_DEBUG", False)

# Logging Configuration
LOG_FORMAT: str = os.environ.get("LOG_FORMAT", "human")  # "json", "human", or "both"
LOG_JSON_FILE: str | None = os.environ.get("LOG_JSON_FILE") or None
LOG_HUMAN_OUTPUT: str = os.environ.get("LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path

MQTT_CLIENT_START_TASK_NAME = "MQTTClient_START"
RECONCILER_START_TASK_NAME = "DiscoveryReconciler_START"
HEALTH_SRV_START_TASK_NAME = "HealthServer_START"
