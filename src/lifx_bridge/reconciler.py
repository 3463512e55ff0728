"""Periodic discovery sweep: refresh the registry and publish present/absent state."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from lifx_bridge.const import DISCOVERY_INTERVAL, DISCOVERY_START_DELAY, DISCOVERY_WAIT
from lifx_bridge.correlation import correlation_context
from lifx_bridge.devices import LightDevice, LightTransport
from lifx_bridge.exceptions import LightTransportError
from lifx_bridge.logging_abstraction import get_logger
from lifx_bridge.registry import DeviceRegistry
from lifx_bridge.structs import BusPublisher, PowerState
from lifx_bridge.topics import encode_topic, topic_key

logger = get_logger(__name__)


@dataclass
class SweepResult:
    """What one sweep saw and published."""

    seen: set[str] = field(default_factory=set)
    published: dict[str, PowerState] = field(default_factory=dict)
    missing: set[str] = field(default_factory=set)
    evicted: set[str] = field(default_factory=set)
    failed: bool = False


class DiscoveryReconciler:
    """Runs a discovery sweep every ``interval`` seconds, independent of MQTT state."""

    lp: str = "reconciler:"

    def __init__(
        self,
        registry: DeviceRegistry,
        transport: LightTransport,
        publisher: BusPublisher,
        topic_prefix: str,
        *,
        interval: float = DISCOVERY_INTERVAL,
        start_delay: float = DISCOVERY_START_DELAY,
        discovery_wait: float = DISCOVERY_WAIT,
    ) -> None:
        self.registry: DeviceRegistry = registry
        self.transport: LightTransport = transport
        self.publisher: BusPublisher = publisher
        self.topic_prefix: str = topic_prefix
        self.interval: float = interval
        self.start_delay: float = start_delay
        self.discovery_wait: float = discovery_wait
        self.running: bool = False
        self.start_task: asyncio.Task[None] | None = None
        self._sweep_task: asyncio.Task[SweepResult] | None = None

    async def start(self) -> None:
        """Fire a sweep every interval; a tick that lands on a running sweep is skipped."""
        lp = f"{self.lp}start:"
        self.running = True
        logger.info(
            "%s first sweep in %ss, then every %ss (discovery wait %ss)",
            lp,
            self.start_delay,
            self.interval,
            self.discovery_wait,
        )
        await asyncio.sleep(self.start_delay)
        try:
            while self.running:
                if self._sweep_task is not None and not self._sweep_task.done():
                    logger.warning("%s previous sweep still running, skipping this tick", lp)
                else:
                    self._sweep_task = asyncio.create_task(self._guarded_sweep(), name="DiscoveryReconciler_SWEEP")
                await asyncio.sleep(self.interval)
        except asyncio.CancelledError:
            logger.debug("%s cancelled", lp)
            raise
        finally:
            self.running = False

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        self.running = False
        for task in (self._sweep_task, self.start_task):
            if task is not None and not task.done():
                logger.debug("%s cancelling %s", lp, task.get_name())
                _ = task.cancel()

    async def _guarded_sweep(self) -> SweepResult:
        try:
            return await self.run_sweep()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s sweep crashed", self.lp)
            return SweepResult(failed=True)

    async def run_sweep(self) -> SweepResult:
        lp = f"{self.lp}sweep:"
        result = SweepResult()
        with correlation_context("sweep"):
            expected = {topic_key(topic): topic for topic in await self.registry.all_topics()}
            logger.info("%s starting, known topics: %s", lp, sorted(expected.values()))

            try:
                devices = await self.transport.discover_all(self.discovery_wait)
            except LightTransportError as exc:
                logger.error("%s discover error: %s", lp, exc)
                result.failed = True
                return result

            async with asyncio.TaskGroup() as tg:
                for device in devices:
                    topic = encode_topic(self.topic_prefix, device.location, device.group, device.name)
                    _ = expected.pop(topic_key(topic), None)
                    result.seen.add(topic)
                    _ = tg.create_task(self._process_device(device, topic, result))

            result.missing = set(expected.values())
            logger.info("%s remaining (not seen) topics: %s", lp, sorted(result.missing))
            for missing_topic in result.missing:
                _ = await self.publisher.publish_state(missing_topic, PowerState.OFF)
            result.evicted = await self.registry.mark_missing(result.missing)

            logger.info(
                "%s done discovery/poll",
                lp,
                extra={"seen": len(result.seen), "missing": len(result.missing), "evicted": len(result.evicted)},
            )
        return result

    async def _process_device(self, device: LightDevice, topic: str, result: SweepResult) -> None:
        lp = f"{self.lp}device:"
        try:
            state: PowerState | None = await device.get_power()
        except LightTransportError as exc:
            logger.warning("%s could not read power for %s: %s", lp, topic, exc)
            state = None
        finally:
            await device.close()

        await self.registry.register(topic, device.identity)
        if state is None:
            return

        logger.info(
            "%s %s -> %s",
            lp,
            topic,
            state.value,
            extra={
                "name": device.name,
                "group": device.group,
                "location": device.location,
                "ip": device.address,
                "mac": device.mac,
            },
        )
        result.published[topic] = state
        _ = await self.publisher.publish_state(topic, state)
