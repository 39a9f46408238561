"""
Sync Coordinator.
Serializes runs per contract address so that only one pass ever advances a cursor.
"""

import asyncio
from typing import Dict, Optional

from app.core.exceptions import SyncInProgressError
from app.core.logging import get_logger
from app.domain.models.sync_state import SyncSummary
from app.infrastructure.blockchain.address_utils import normalize_address
from app.api.services.sync_engine import BatchSyncEngine

logger = get_logger(__name__)


class SyncCoordinator:
    """Single-writer guard around the sync engine. Busy addresses reject new runs."""

    def __init__(self, engine: BatchSyncEngine):
        self.engine = engine
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, address: str) -> asyncio.Lock:
        lock = self._locks.get(address)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[address] = lock
        return lock

    def is_running(self, contract_address: str) -> bool:
        """Whether a run is in progress for the address."""
        lock = self._locks.get(normalize_address(contract_address))
        return bool(lock and lock.locked())

    async def run(
        self,
        contract_address: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncSummary:
        """
        Run a sync pass unless one is already running for the address.

        Raises:
            SyncInProgressError: If the address is busy
            SyncRunError: If the run aborts
        """
        address = normalize_address(contract_address)
        lock = self._lock_for(address)
        if lock.locked():
            logger.info(f"Sync already running for {address}, rejecting trigger")
            raise SyncInProgressError(address)

        async with lock:
            return await self.engine.run(address, cancel_event=cancel_event)
