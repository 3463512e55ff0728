"""In-process cache correlating topics with the lights that last answered for them."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass

from lifx_bridge.const import STALE_SWEEP_LIMIT
from lifx_bridge.logging_abstraction import get_logger
from lifx_bridge.structs import DeviceIdentity
from lifx_bridge.topics import topic_key

logger = get_logger(__name__)


@dataclass
class RegistryEntry:
    topic: str
    identity: DeviceIdentity
    missed_sweeps: int = 0

    @property
    def location(self) -> str | None:
        return self.identity.location

    @property
    def group(self) -> str | None:
        return self.identity.group

    @property
    def name(self) -> str | None:
        return self.identity.name


class DeviceRegistry:
    """Topic -> last known identity.

    The registry owns its mapping and every access takes ``_lock``, so the
    reconciler and a resolver fallback writing the same key simply apply in
    order (last writer wins). Keys are case-insensitive; the stored topic keeps
    the casing it was last registered with.
    """

    lp: str = "registry:"

    def __init__(self, stale_sweep_limit: int = STALE_SWEEP_LIMIT) -> None:
        self.stale_sweep_limit: int = stale_sweep_limit
        self._entries: dict[str, RegistryEntry] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def register(self, topic: str, identity: DeviceIdentity) -> None:
        lp = f"{self.lp}register:"
        async with self._lock:
            previous = self._entries.get(topic_key(topic))
            self._entries[topic_key(topic)] = RegistryEntry(topic=topic, identity=identity)
        if previous is None or previous.identity != identity:
            logger.debug(
                "%s %s -> ip: %s mac: %s",
                lp,
                topic,
                identity.address,
                identity.mac,
            )

    async def lookup(self, topic: str) -> DeviceIdentity | None:
        async with self._lock:
            entry = self._entries.get(topic_key(topic))
        return entry.identity if entry else None

    async def entry(self, topic: str) -> RegistryEntry | None:
        async with self._lock:
            return self._entries.get(topic_key(topic))

    async def all_topics(self) -> set[str]:
        async with self._lock:
            return {entry.topic for entry in self._entries.values()}

    async def mark_missing(self, topics: Iterable[str]) -> set[str]:
        """Count one missed sweep for each topic; evict those that reached the limit.

        Returns the evicted topics. Nothing is evicted when the limit is 0.
        """
        lp = f"{self.lp}mark_missing:"
        evicted: set[str] = set()
        async with self._lock:
            for topic in topics:
                key = topic_key(topic)
                entry = self._entries.get(key)
                if entry is None:
                    continue
                entry.missed_sweeps += 1
                if self.stale_sweep_limit and entry.missed_sweeps >= self.stale_sweep_limit:
                    del self._entries[key]
                    evicted.add(entry.topic)
        if evicted:
            logger.info(
                "%s evicted %d device(s) after %d missed sweeps: %s",
                lp,
                len(evicted),
                self.stale_sweep_limit,
                sorted(evicted),
            )
        return evicted
