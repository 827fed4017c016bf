"""
Cycle Scheduler - Single-flight, self-rescheduling timer loop with graceful drain
"""
import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Set

from loguru import logger

MIN_EXECUTION_INTERVAL_SECONDS = 120.0
DRAIN_POLL_SECONDS = 0.5


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting_down"


class CycleScheduler:
    """
    Runs one trading cycle at a time on a fixed interval.

    A tick that fires while a cycle is in flight is dropped. Cycle failures are
    reported through `on_error` and never stop the loop. Shutdown cancels the
    pending timer and waits for the in-flight cycle, if any, to finish.
    """

    def __init__(
        self,
        cycle: Callable[[], Awaitable[Any]],
        interval_seconds: float,
        on_error: Optional[Callable[[BaseException], Awaitable[Any]]] = None,
        min_interval_seconds: float = MIN_EXECUTION_INTERVAL_SECONDS,
        drain_poll_seconds: float = DRAIN_POLL_SECONDS,
    ):
        self._cycle = cycle
        self._on_error = on_error
        self.interval_seconds = max(float(interval_seconds or 0), min_interval_seconds)
        self.drain_poll_seconds = drain_poll_seconds

        self._running = False
        self._shutting_down = False
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = asyncio.Event()

        self.completed_cycles = 0
        self.failed_cycles = 0
        self.skipped_ticks = 0

    @property
    def state(self) -> SchedulerState:
        if self._shutting_down:
            return SchedulerState.SHUTTING_DOWN
        return SchedulerState.RUNNING if self._running else SchedulerState.IDLE

    @property
    def has_pending_timer(self) -> bool:
        return self._timer is not None

    def start(self) -> asyncio.Task:
        """Run the first cycle now; later cycles follow on the interval"""
        logger.info(f"Starting trading loop; interval set to {round(self.interval_seconds)} seconds")
        return self._spawn()

    async def run_scheduled_cycle(self) -> None:
        """Guarded cycle entry point"""
        if self._shutting_down:
            return
        if self._running:
            self.skipped_ticks += 1
            logger.warning("Previous trading cycle still running; skipping this tick")
            return

        self._running = True
        try:
            await self._cycle()
        except Exception as e:
            self.failed_cycles += 1
            await self._report_error(e)
        finally:
            self._running = False
            self.completed_cycles += 1
            self._schedule_next()

    async def _report_error(self, error: Exception) -> None:
        logger.opt(exception=error).error(f"Trading cycle failed: {error}")
        if self._on_error is None:
            return
        try:
            await self._on_error(error)
        except Exception as e:
            logger.error(f"Failed to report cycle error: {e}")

    def _schedule_next(self) -> None:
        if self._shutting_down:
            return
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.interval_seconds, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._spawn()

    def _spawn(self) -> asyncio.Task:
        task = asyncio.ensure_future(self.run_scheduled_cycle())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def request_shutdown(self, signal_name: str = "shutdown") -> None:
        """Signal-handler friendly wrapper around shutdown()"""
        task = asyncio.ensure_future(self.shutdown(signal_name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def shutdown(self, signal_name: str = "shutdown") -> None:
        """Stop scheduling and wait for the in-flight cycle to complete"""
        if self._shutting_down:
            await self._closed.wait()
            return
        self._shutting_down = True
        logger.info(f"Received {signal_name}; stopping scheduler...")
        self._cancel_timer()

        if self._running:
            logger.info("Waiting for the in-flight trading cycle to finish")
        while self._running:
            await asyncio.sleep(self.drain_poll_seconds)

        self._closed.set()
        logger.info("Scheduler stopped")

    async def wait_closed(self) -> None:
        await self._closed.wait()
