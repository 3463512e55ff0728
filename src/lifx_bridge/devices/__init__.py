"""Light device interface and its LIFX LAN implementation."""

from .base_device import LightDevice, LightTransport
from .lifx_device import LifxLight, LifxTransport

__all__ = ["LifxLight", "LifxTransport", "LightDevice", "LightTransport"]
