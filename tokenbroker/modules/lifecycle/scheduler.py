import asyncio
import logging
from typing import Optional

from .engine import LifecycleEngine

logger = logging.getLogger(__name__)


class ReconcileScheduler:
    """
    Runs LifecycleEngine.reconcile on a fixed interval.

    The engine serializes passes itself; this only owns the timer.
    """

    def __init__(self, engine: LifecycleEngine, interval: float = 60):
        """
        Initialize scheduler.

        Args:
            engine: Engine to reconcile
            interval: Seconds between the end of one pass and the start of the next
        """
        if interval <= 0:
            raise ValueError("reconcile interval must be positive")
        self.engine = engine
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="tokenbroker-reconcile")
        logger.info(f"Reconciliation scheduled every {self.interval}s")

    async def stop(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reconciliation scheduler stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.engine.reconcile()
            except Exception as e:
                logger.exception(f"Reconciliation pass failed: {e}")
