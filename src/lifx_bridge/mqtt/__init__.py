"""MQTT side of the bridge.

- client.py: MQTTClient with connection lifecycle and publish policy
- command_routing.py: inbound message routing to the command resolver
"""

from .client import MQTTClient
from .command_routing import CommandRouter, RouteOutcome

__all__ = ["CommandRouter", "MQTTClient", "RouteOutcome"]
