"""Periodic, single-flight scan loop.

Each tick runs in its own task so a slow inference never delays the timer,
but a capacity-1 queue acts as the in-flight permit: a tick that fires while
the previous one still holds the permit is skipped, not queued.

Results are applied in completion order. Every ``stop`` bumps the scheduler
generation and replaces the permit, so a tick that started before the stop
can finish its inference but its result is discarded.
"""
import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from idverify.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class ScanScheduler(Generic[T]):
    """Drives one stage's per-frame work at a fixed interval.

    Args:
        name: Name used in logs
        interval: Seconds between timer firings
        work: Asynchronous inference for one tick
        apply: Called with the work result if the tick is still current

    Example:
        ```python
        scheduler = ScanScheduler("identifier", 0.5, stage.recognize, handle_text)
        scheduler.start()
        ...
        scheduler.stop()
        ```
    """

    def __init__(
        self,
        name: str,
        interval: float,
        work: Callable[[], Awaitable[T]],
        apply: Callable[[T], Awaitable[None]],
    ) -> None:
        self.name = name
        self.interval = interval
        self._work = work
        self._apply = apply
        self._permit: asyncio.Queue = asyncio.Queue(maxsize=1)
        self._generation = 0
        self._timer: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None

        # Stats tracking
        self.ticks_started = 0
        self.ticks_skipped = 0
        self.ticks_failed = 0
        self.results_discarded = 0

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def busy(self) -> bool:
        """Whether a tick currently holds the in-flight permit."""
        return self._permit.full()

    def start(self) -> None:
        """Fire a tick immediately, then every ``interval`` seconds."""
        if self.running:
            return
        logger.info("Starting scan loop", scheduler=self.name, interval=self.interval)
        self._timer = asyncio.create_task(self._run_timer(), name=f"{self.name}-timer")

    def stop(self) -> None:
        """Cancel the timer and any in-flight tick, and clear the permit.

        Safe to call from inside ``apply``: the calling tick is not cancelled,
        only marked stale.
        """
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        inflight = self._inflight
        if inflight is not None and not inflight.done() and inflight is not asyncio.current_task():
            inflight.cancel()
        self._inflight = None
        self._permit = asyncio.Queue(maxsize=1)
        logger.info("Stopped scan loop", scheduler=self.name)

    def trigger(self) -> bool:
        """Start one tick unless another is still in flight.

        Returns:
            True if a tick was started, False if it was skipped
        """
        try:
            self._permit.put_nowait(self._generation)
        except asyncio.QueueFull:
            self.ticks_skipped += 1
            logger.debug("Skipped tick, previous tick still running", scheduler=self.name)
            return False

        self.ticks_started += 1
        self._inflight = asyncio.create_task(
            self._run_tick(self._permit, self._generation),
            name=f"{self.name}-tick-{self.ticks_started}",
        )
        return True

    async def _run_timer(self) -> None:
        while True:
            self.trigger()
            await asyncio.sleep(self.interval)

    async def _run_tick(self, permit: asyncio.Queue, generation: int) -> None:
        try:
            try:
                result = await self._work()
            except Exception as e:
                self.ticks_failed += 1
                logger.error("Scan tick failed", scheduler=self.name, error=str(e), exc_info=True)
                return

            if generation != self._generation:
                self.results_discarded += 1
                logger.debug("Discarded result of stale tick", scheduler=self.name)
                return

            try:
                await self._apply(result)
            except Exception as e:
                self.ticks_failed += 1
                logger.error("Applying tick result failed", scheduler=self.name, error=str(e), exc_info=True)
        finally:
            permit.get_nowait()
