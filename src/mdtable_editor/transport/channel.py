"""Sending messages to editing surfaces and tracking whether they are alive.

``send_with_retry`` retries a failed send immediately, up to a fixed number
of attempts, then re-raises the last failure.  ConnectionHealthMonitor
pings every registered surface on a fixed interval and marks a surface
unhealthy once it has been silent longer than the health timeout; any
validated inbound message (including ``pong``) marks it healthy again.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

from mdtable_editor import config
from mdtable_editor.tables.schema import ConnectionHealth
from mdtable_editor.transport.messages import OutboundMessage, PingMessage

logger = logging.getLogger(__name__)


class MessageChannel(Protocol):
    async def send(self, message: dict) -> None: ...


def _as_wire(message: OutboundMessage | dict) -> dict:
    return message.to_wire() if isinstance(message, OutboundMessage) else message


async def send_with_retry(channel: MessageChannel, message: OutboundMessage | dict, max_retries: int = config.MAX_SEND_RETRIES) -> None:
    """Send ``message``, retrying immediately on failure; the final failure propagates unchanged."""
    if max_retries < 1:
        raise ValueError(f"max_retries must be at least 1, got {max_retries}")
    payload = _as_wire(message)
    for attempt in range(1, max_retries + 1):
        try:
            await channel.send(payload)
            return
        except Exception:  # pylint: disable=broad-exception-caught
            if attempt == max_retries:
                logger.error("Failed to send %s after %d attempts", payload.get("command"), max_retries)
                raise
            logger.warning("Send of %s failed (attempt %d/%d); retrying", payload.get("command"), attempt, max_retries)


class ConnectionHealthMonitor:
    """Liveness bookkeeping and periodic pings for attached surfaces."""

    def __init__(
        self,
        interval: float = config.PING_INTERVAL_SECONDS,
        timeout: float = config.HEALTH_TIMEOUT_SECONDS,
        max_retries: int = config.MAX_SEND_RETRIES,
        clock: Callable[[], float] = time.time,
    ):
        self.interval = interval
        self.timeout = timeout
        self.max_retries = max_retries
        self.clock = clock
        self._channels: dict[str, MessageChannel] = {}
        self._health: dict[str, ConnectionHealth] = {}
        self._task: asyncio.Task | None = None

    # ── Registration / state ─────────────────────────────────────────────

    def register(self, instance_id: str, channel: MessageChannel) -> None:
        self._channels[instance_id] = channel
        self._health[instance_id] = ConnectionHealth(is_healthy=True, last_activity=self.clock())

    def unregister(self, instance_id: str) -> None:
        self._channels.pop(instance_id, None)
        self._health.pop(instance_id, None)

    def mark_healthy(self, instance_id: str) -> None:
        if instance_id in self._health:
            self._health[instance_id] = ConnectionHealth(is_healthy=True, last_activity=self.clock())

    def mark_unhealthy(self, instance_id: str) -> None:
        health = self._health.get(instance_id)
        if health is not None and health.is_healthy:
            logger.warning("Surface %s marked unhealthy", instance_id)
            self._health[instance_id] = health.model_copy(update={"is_healthy": False})

    def get_health(self, instance_id: str) -> ConnectionHealth | None:
        health = self._health.get(instance_id)
        return health.model_copy() if health is not None else None

    def handle_pong(self, instance_id: str, timestamp: float, response_time: float) -> None:
        self.mark_healthy(instance_id)
        logger.debug("Pong from %s (ping at %.0f, round trip %.1f ms)", instance_id, timestamp, response_time)

    # ── Pinging ──────────────────────────────────────────────────────────

    async def check_once(self) -> None:
        """One health pass: mark silent surfaces unhealthy and ping everyone."""
        now = self.clock()
        for instance_id, channel in list(self._channels.items()):
            health = self._health.get(instance_id)
            if health is not None and now - health.last_activity > self.timeout:
                self.mark_unhealthy(instance_id)
            try:
                await send_with_retry(channel, PingMessage(timestamp=now * 1000), self.max_retries)
            except Exception:  # pylint: disable=broad-exception-caught
                logger.warning("Ping to %s failed", instance_id)
                self.mark_unhealthy(instance_id)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.check_once()

    def start(self) -> None:
        """Start the ping loop on the running event loop (no-op if already running)."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        """Cancel the ping loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()
