"""Exception types raised by the LIFX transport adapter.

Components above the transport catch ``LightTransportError`` and degrade to a
logged no-op; nothing in this family is allowed to reach the event loop.
"""

from __future__ import annotations


class LightTransportError(Exception):
    """Base class for LIFX LAN failures."""


class DiscoveryError(LightTransportError):
    """A discovery sweep could not be run or did not finish.

    Attributes:
        reason: Specific failure reason
        wait: Discovery window in seconds

    """

    def __init__(self, reason: str, wait: float = 0.0) -> None:
        self.reason: str = reason
        self.wait: float = wait
        super().__init__(f"Discovery failed: {reason} (wait: {wait}s)")


class DeviceRequestError(LightTransportError):
    """A request to a single light failed or went unanswered.

    Attributes:
        address: IP address of the light
        request: Name of the request that failed

    """

    def __init__(self, address: str, request: str, reason: str = "no response") -> None:
        self.address: str = address
        self.request: str = request
        super().__init__(f"{request} to {address} failed: {reason}")
