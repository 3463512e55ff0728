from __future__ import annotations

import asyncio
import os
import signal

from lifx_bridge.logging_abstraction import get_logger
from lifx_bridge.structs import GlobalObject

logger = get_logger(__name__)
g = GlobalObject()
_cleanup_tasks: set[asyncio.Task[None]] = set()


def send_signal(signal_num: int) -> None:
    """Send a signal to the current process."""
    try:
        logger.debug("Sending signal %s to process %s", signal_num, os.getpid())
        os.kill(os.getpid(), signal_num)
    except OSError:
        logger.exception("Failed to send signal %s to process", signal_num)
        raise


def send_sigterm() -> None:
    """Ask the bridge to shut down (handled by ``signal_handler``)."""
    send_signal(signal.SIGTERM)


async def _async_signal_cleanup() -> None:
    logger.info("LIFX bridge: Starting signal cleanup...")
    if g.reconciler:
        logger.debug("Stopping reconciler...")
        await g.reconciler.stop()
    if g.mqtt_client:
        logger.debug("Stopping mqtt_client...")
        await g.mqtt_client.stop()
    if g.health_server:
        logger.debug("Stopping health server...")
        await g.health_server.stop()
    for task in g.tasks:
        if not task.done():
            logger.debug("LIFX bridge: Cancelling task: %s", task.get_name())
            _ = task.cancel()
    logger.info("LIFX bridge: Signal cleanup completed")


def signal_handler(signum: int) -> None:
    logger.info("LIFX bridge: Intercepted signal: %s (%s)", signal.Signals(signum).name, signum)
    loop = g.loop or asyncio.get_event_loop()
    task = loop.create_task(_async_signal_cleanup())
    _cleanup_tasks.add(task)
    task.add_done_callback(_cleanup_tasks.discard)
