"""
Batch Sync Engine.
Replays registry UserRegistered events into the mirror in bounded, resumable windows.
"""

import asyncio
from typing import Awaitable, Callable, Dict, Iterator, Optional, Tuple

from app.core.config import settings
from app.core.exceptions import (
    EventDecodeError,
    MirrorException,
    RpcRangeTooLargeError,
    SyncRunError,
    ValidationError,
)
from app.core.logging import get_logger, log_sync_run, log_sync_window
from app.domain.models.sync_state import SyncState, SyncSummary
from app.domain.repositories.sync_cursor_repository import SyncCursorRepository
from app.domain.repositories.user_repository import UserRepository
from app.infrastructure.blockchain.address_utils import normalize_address
from app.infrastructure.blockchain.chain_client import ChainClient
from app.infrastructure.blockchain.registry_events import (
    USER_REGISTERED_SIGNATURE,
    RegistrationEvent,
    decode_user_registered,
)

logger = get_logger(__name__)


class BatchSyncEngine:
    """
    Incremental replay of registry events into the mirror.

    A run reads the cursor, clamps the target range to MAX_RANGE, then walks
    it in BATCH_SIZE windows. The cursor only moves past a window once every
    event in it has been applied, so a crash resumes at a window boundary and
    at-least-once delivery is absorbed by the idempotent user upsert.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        cursor_repository: SyncCursorRepository,
        user_repository: UserRepository,
        deployment_block: Optional[int] = None,
        batch_size: Optional[int] = None,
        max_range: Optional[int] = None,
        inter_batch_delay: Optional[float] = None,
        confirmation_blocks: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.chain_client = chain_client
        self.cursor_repository = cursor_repository
        self.user_repository = user_repository
        self.deployment_block = (
            settings.DEPLOYMENT_BLOCK if deployment_block is None else deployment_block
        )
        self.batch_size = settings.BATCH_SIZE if batch_size is None else batch_size
        self.max_range = settings.MAX_RANGE if max_range is None else max_range
        if self.batch_size < 1 or self.max_range < 1:
            raise ValidationError(
                "batch_size and max_range must be >= 1",
                {"batch_size": self.batch_size, "max_range": self.max_range},
            )
        self.inter_batch_delay = (
            settings.INTER_BATCH_DELAY_SECONDS if inter_batch_delay is None else inter_batch_delay
        )
        self.confirmation_blocks = (
            settings.CONFIRMATION_BLOCKS if confirmation_blocks is None else confirmation_blocks
        )
        self.event_signature = USER_REGISTERED_SIGNATURE
        self._sleep = sleep
        self._states: Dict[str, SyncState] = {}

    def state_of(self, contract_address: str) -> SyncState:
        """Current engine state for an address."""
        return self._states.get(normalize_address(contract_address), SyncState.IDLE)

    def _set_state(self, address: str, state: SyncState) -> None:
        self._states[address] = state

    async def compute_range(self, contract_address: str) -> Tuple[int, int, Optional[int]]:
        """
        Compute the block range for the next run.

        Returns:
            (start_block, end_block, last_synced_block); end < start means
            there is nothing to do
        """
        last_synced = await self.cursor_repository.get(contract_address)
        if last_synced is None:
            start_block = self.deployment_block
            logger.info(f"First sync - starting from deployment block {start_block}")
        else:
            start_block = last_synced + 1

        head = await self.chain_client.current_height() - self.confirmation_blocks
        end_block = min(head, start_block + self.max_range - 1)
        if head - start_block + 1 > self.max_range:
            logger.warning(
                f"Too many blocks to sync ({head - start_block + 1}). "
                f"Limiting to {self.max_range}"
            )
        return start_block, end_block, last_synced

    def iter_windows(self, start_block: int, end_block: int) -> Iterator[Tuple[int, int]]:
        """Yield inclusive (from, to) windows of batch_size blocks, ascending."""
        window_start = start_block
        while window_start <= end_block:
            window_end = min(window_start + self.batch_size - 1, end_block)
            yield window_start, window_end
            window_start = window_end + 1

    async def run(
        self,
        contract_address: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> SyncSummary:
        """
        Run one sync pass for a watched contract.

        Args:
            contract_address: Registry contract address
            cancel_event: When set, the run stops before the next window

        Returns:
            SyncSummary of the run

        Raises:
            SyncRunError: If the run aborted; carries the last committed cursor
        """
        address = normalize_address(contract_address)
        self._set_state(address, SyncState.COMPUTING_RANGE)

        try:
            start_block, end_block, last_synced = await self.compute_range(address)
        except MirrorException as e:
            self._set_state(address, SyncState.ABORTED)
            log_sync_run(address, "aborted", error=e.error_code)
            raise SyncRunError(e, address, None) from e

        if end_block < start_block:
            self._set_state(address, SyncState.IDLE)
            log_sync_run(address, "caught_up", from_block=start_block, last_synced_block=last_synced)
            return SyncSummary(
                contract_address=address,
                from_block=start_block,
                to_block=start_block - 1,
                last_synced_block=last_synced,
            )

        logger.info(
            f"Syncing {address} from block {start_block} to {end_block} "
            f"({end_block - start_block + 1} blocks)"
        )
        summary = SyncSummary(
            contract_address=address,
            from_block=start_block,
            to_block=end_block,
            last_synced_block=last_synced,
        )

        window_start = window_end = start_block
        try:
            for window_start, window_end in self.iter_windows(start_block, end_block):
                if cancel_event is not None and cancel_event.is_set():
                    summary.cancelled = True
                    summary.to_block = window_start - 1
                    logger.info(f"Sync for {address} cancelled before block {window_start}")
                    break

                await self._sync_window(address, window_start, window_end, summary)

                if window_end < end_block and self.inter_batch_delay > 0:
                    await self._sleep(self.inter_batch_delay)
        except MirrorException as e:
            self._set_state(address, SyncState.ABORTED)
            log_sync_run(
                address,
                "aborted",
                from_block=start_block,
                to_block=end_block,
                last_synced_block=summary.last_synced_block,
                error=e.error_code,
                failed_window=[window_start, window_end],
            )
            raise SyncRunError(
                e,
                address,
                summary.last_synced_block,
                {
                    "from_block": start_block,
                    "to_block": end_block,
                    "failed_window": [window_start, window_end],
                    "events_applied": summary.events_applied,
                },
            ) from e

        self._set_state(address, SyncState.IDLE)
        log_sync_run(
            address,
            "cancelled" if summary.cancelled else "completed",
            from_block=start_block,
            to_block=summary.to_block,
            last_synced_block=summary.last_synced_block,
            events_found=summary.events_found,
            events_applied=summary.events_applied,
        )
        return summary

    async def _sync_window(
        self, address: str, from_block: int, to_block: int, summary: SyncSummary
    ) -> None:
        """Fetch, apply and commit one window. A rejected window is split in half."""
        self._set_state(address, SyncState.FETCHING)
        try:
            events = await self.chain_client.query_events(
                address, self.event_signature, from_block, to_block
            )
        except RpcRangeTooLargeError:
            if from_block >= to_block:
                raise
            middle = (from_block + to_block) // 2
            logger.warning(
                f"Provider rejected blocks {from_block}-{to_block}; splitting window. "
                f"Consider lowering BATCH_SIZE (currently {self.batch_size})"
            )
            await self._sync_window(address, from_block, middle, summary)
            if self.inter_batch_delay > 0:
                await self._sleep(self.inter_batch_delay)
            await self._sync_window(address, middle + 1, to_block, summary)
            return

        self._set_state(address, SyncState.APPLYING)
        logger.debug(f"Found {len(events)} events in blocks {from_block}-{to_block}")
        applied = 0
        for raw_event in sorted(events, key=lambda e: e.position):
            summary.events_found += 1
            try:
                registration = decode_user_registered(raw_event)
            except EventDecodeError as e:
                summary.events_skipped += 1
                logger.warning(
                    f"Skipping undecodable log at block {raw_event.block_number} "
                    f"index {raw_event.log_index}: {e.message}"
                )
                continue

            if await self._apply_registration(address, registration, summary):
                applied += 1

        self._set_state(address, SyncState.ADVANCING)
        await self.cursor_repository.advance(address, to_block)
        summary.last_synced_block = to_block
        summary.events_applied += applied
        log_sync_window(address, from_block, to_block, len(events), applied)

    async def _apply_registration(
        self, address: str, registration: RegistrationEvent, summary: SyncSummary
    ) -> bool:
        """Mirror one registration. Returns True if a user was created."""
        if await self.user_repository.exists(registration.wallet_address):
            summary.duplicates += 1
            logger.info(f"User {registration.wallet_address} already indexed, skipping")
            return False

        try:
            profile = await self.chain_client.get_user_profile(
                address, registration.wallet_address
            )
        except EventDecodeError as e:
            summary.events_skipped += 1
            logger.warning(
                f"Skipping {registration.wallet_address}: unreadable registry profile ({e.message})"
            )
            return False

        created = await self.user_repository.upsert_user_from_registration(
            wallet_address=registration.wallet_address,
            user_type=registration.user_type,
            metadata_uri=profile.metadata_uri,
            location=profile.location,
            is_active=profile.is_active,
            is_verified=profile.is_verified,
            registration_time=registration.registration_time,
            observed_block=registration.block_number,
            skills=profile.skills,
        )
        if not created:
            summary.duplicates += 1
        return created
