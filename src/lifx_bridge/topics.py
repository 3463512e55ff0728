"""Topic scheme: ``{prefix}/{location}/{group}/{name}[/{command}]``.

Addressing segments are read from the end of the topic, so a prefix that itself
contains ``/`` works unchanged. Nothing here validates segment content.
"""

from __future__ import annotations

from typing import NamedTuple

from lifx_bridge.const import SET_POWER_COMMAND

__all__ = [
    "TopicAddress",
    "command_subscription",
    "command_suffix",
    "command_topic",
    "decode_topic",
    "encode_topic",
    "topic_key",
]


class TopicAddress(NamedTuple):
    location: str
    group: str
    name: str


def encode_topic(prefix: object, location: object, group: object, name: object) -> str:
    """Build the state topic for a light. Segments are stringified as-is."""
    return "/".join(str(segment) for segment in (prefix, location, group, name))


def command_topic(prefix: object, location: object, group: object, name: object, command: str) -> str:
    return f"{encode_topic(prefix, location, group, name)}/{command}"


def command_subscription(prefix: str, command: str = SET_POWER_COMMAND) -> str:
    return f"{prefix}/+/+/+/{command}"


def decode_topic(topic: str, *, suffixed: bool = True) -> TopicAddress:
    """Pull (location, group, name) from the end of a topic.

    Command topics (``suffixed=True``) carry a trailing command segment that is
    skipped; state topics end with the name. A topic that is too short yields
    empty strings for the missing positions.
    """
    parts = topic.split("/")
    skip = 1 if suffixed else 0

    def _from_end(offset: int) -> str:
        offset += skip
        return parts[-offset] if len(parts) >= offset else ""

    return TopicAddress(location=_from_end(3), group=_from_end(2), name=_from_end(1))


def command_suffix(topic: str) -> str:
    return topic.rsplit("/", 1)[-1]


def topic_key(topic: str) -> str:
    """Case-insensitive matching key for a topic."""
    return topic.casefold()
