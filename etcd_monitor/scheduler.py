"""Tick scheduler for the monitoring loop.

Run one tick immediately, then one tick per interval until an OS termination
signal arrives. Ticks never overlap. Between ticks the scheduler waits on
whichever comes first: the next due time or the shutdown event. A signal
that arrives during a tick lets that tick finish and prevents the next one.

States:
    IDLE: Created, no tick has run yet.
    RUNNING: Executing a tick or waiting for the next one.
    TERMINATING: Shutdown requested; the in-flight tick (if any) drains.
"""

import asyncio
import signal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import httpx

from etcd_monitor.config import Settings
from etcd_monitor.core.logging_config import bind_contextvars, get_logger, unbind_contextvars
from etcd_monitor.healthcheck import probe_unhealthy_count
from etcd_monitor.metrics import MetricSink

logger = get_logger(__name__)

TERMINATION_SIGNALS = (signal.SIGTERM, signal.SIGINT, signal.SIGHUP, signal.SIGQUIT)

Tick = Callable[[], Awaitable[Any]]


class Phase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    TERMINATING = "terminating"


def next_deadline(previous: float, now: float, interval: float) -> float:
    """Return the next due time on the grid previous + k * interval.

    Behaves like a ticker with a single pending slot: when the running tick
    overran one or more due times, the latest of them is returned (it is
    already due, so one tick runs at once) and the earlier ones are dropped.
    A due time equal to `now` is still due.
    """
    if now < previous + interval:
        return previous + interval
    passed = int((now - previous) // interval)
    return previous + passed * interval


def build_health_tick(settings: Settings, client: httpx.AsyncClient, sink: MetricSink) -> Tick:
    """Return the probe-then-emit tick for the configured etcd member."""

    async def tick() -> float:
        count = await probe_unhealthy_count(settings.ETCD_ADVERTISE_CLIENT_URLS, client)
        await sink.emit_async(count)
        return count

    return tick


class Scheduler:
    """Fixed-rate, single-worker tick loop with signal-driven shutdown.

    Args:
        interval: Seconds between the start of two ticks. Must be positive.
        tick: Coroutine function executed on every tick.
    """

    def __init__(self, interval: float, tick: Tick) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval!r}")
        self.interval = interval
        self.phase = Phase.IDLE
        self.ticks_completed = 0
        self._tick = tick
        self._shutdown_event = asyncio.Event()
        self._signal_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown_event.is_set()

    def request_shutdown(self, signame: Optional[str] = None) -> None:
        """Stop scheduling new ticks. Safe to call more than once."""
        if self._shutdown_event.is_set():
            return
        logger.info("Shutdown requested", signal=signame)
        self.phase = Phase.TERMINATING
        self._shutdown_event.set()

    def install_signal_handlers(self) -> None:
        """Route termination signals to `request_shutdown` on the running loop."""
        loop = asyncio.get_running_loop()
        for sig in TERMINATION_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass
        self._signal_loop = loop

    def remove_signal_handlers(self) -> None:
        if self._signal_loop is None:
            return
        for sig in TERMINATION_SIGNALS:
            try:
                self._signal_loop.remove_signal_handler(sig)
            except NotImplementedError:
                pass
        self._signal_loop = None

    async def run(self) -> None:
        """Run ticks until shutdown is requested."""
        loop = asyncio.get_running_loop()
        if not self.shutdown_requested:
            self.phase = Phase.RUNNING
        logger.info("Scheduler started", interval=self.interval)

        due = loop.time()
        while not self.shutdown_requested:
            await self._run_tick()
            if self.shutdown_requested:
                break

            now = loop.time()
            following = next_deadline(due, now, self.interval)
            if following < now:
                dropped = int(round((following - due) / self.interval)) - 1
                logger.warning("Tick overran interval", dropped_ticks=dropped)
            due = following

            if await self._wait_until(due):
                break

        self.phase = Phase.TERMINATING
        logger.info("Scheduler stopped", ticks=self.ticks_completed)

    async def _run_tick(self) -> None:
        bind_contextvars(tick=self.ticks_completed + 1)
        try:
            await self._tick()
        except Exception:
            logger.exception("Tick failed")
        finally:
            self.ticks_completed += 1
            unbind_contextvars("tick")

    async def _wait_until(self, deadline: float) -> bool:
        """Sleep until `deadline` or shutdown. Return True on shutdown."""
        delay = max(0.0, deadline - asyncio.get_running_loop().time())
        sleeper = asyncio.ensure_future(asyncio.sleep(delay))
        stopper = asyncio.ensure_future(self._shutdown_event.wait())
        done, pending = await asyncio.wait(
            {sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        return stopper in done
