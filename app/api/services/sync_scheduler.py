"""
Periodic sync trigger started from the application lifespan.
"""

import asyncio
from typing import Optional

from app.core.exceptions import SyncInProgressError, SyncRunError
from app.core.logging import get_logger, log_error
from app.api.services.sync_coordinator import SyncCoordinator

logger = get_logger(__name__)


class SyncScheduler:
    """Runs the coordinator for one address every `interval` seconds."""

    def __init__(self, coordinator: SyncCoordinator, contract_address: str, interval: float):
        self.coordinator = coordinator
        self.contract_address = contract_address
        self.interval = interval
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the background loop."""
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        logger.info(
            f"Sync scheduler started for {self.contract_address} every {self.interval}s"
        )

    async def stop(self) -> None:
        """Stop after the current window finishes."""
        if not self._task:
            return
        self._stop_event.set()
        await self._task
        self._task = None
        logger.info("Sync scheduler stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            await self.tick()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def tick(self) -> None:
        """One scheduled run. Failures are logged; the next tick resumes from the cursor."""
        try:
            await self.coordinator.run(self.contract_address, cancel_event=self._stop_event)
        except SyncInProgressError:
            logger.info("Scheduled sync skipped: a run is already in progress")
        except SyncRunError as e:
            log = logger.critical if e.cause.error_code == "CURSOR_WRITE_FAILED" else logger.error
            log(
                f"Scheduled sync failed: {e.message}",
                last_synced_block=e.last_synced_block,
                cause=e.cause.error_code,
            )
        except Exception as e:
            log_error(e, {"contract_address": self.contract_address, "source": "scheduler"})
