"""
Sync Router.
Manual trigger, cursor status and chain health for the registry mirror.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query

from app.api.dto.sync_dto import (
    BlockchainHealthDTO,
    SyncRunRequestDTO,
    SyncRunResponseDTO,
    SyncStatusDTO,
    SyncSummaryDTO,
)
from app.api.services.sync_service import SyncService, get_sync_service
from app.core.exceptions import (
    MirrorException,
    create_http_exception,
    get_exception_status_code,
)
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/run", response_model=SyncRunResponseDTO)
async def run_sync(
    request: Optional[SyncRunRequestDTO] = Body(None),
    service: SyncService = Depends(get_sync_service),
) -> SyncRunResponseDTO:
    """
    Run one sync pass for a contract.

    The run either advances the cursor to the reported block or fails with
    the last committed cursor in the error details.
    """
    contract_address = request.contract_address if request else None
    logger.info(f"Manual sync requested for {contract_address or 'registry'}")

    try:
        summary = await service.run_sync(contract_address)
    except MirrorException as e:
        raise create_http_exception(e, get_exception_status_code(e))

    if summary.events_applied == 0 and summary.to_block < summary.from_block:
        message = "Already up to date"
    elif summary.cancelled:
        message = f"Sync cancelled at block {summary.last_synced_block}"
    else:
        message = f"Synced through block {summary.last_synced_block}"

    return SyncRunResponseDTO(
        success=True,
        message=message,
        data=SyncSummaryDTO.from_summary(summary),
    )


@router.get("/status", response_model=SyncStatusDTO)
async def get_sync_status(
    contract_address: Optional[str] = Query(None, description="Defaults to the registry"),
    service: SyncService = Depends(get_sync_service),
) -> SyncStatusDTO:
    """Current cursor and engine state."""
    try:
        status = await service.get_status(contract_address)
    except MirrorException as e:
        raise create_http_exception(e, get_exception_status_code(e))
    return SyncStatusDTO(**status)


@router.get("/health", response_model=BlockchainHealthDTO)
async def check_blockchain(
    service: SyncService = Depends(get_sync_service),
) -> BlockchainHealthDTO:
    """RPC reachability, head block and registry deployment."""
    try:
        health = await service.check_health()
    except MirrorException as e:
        raise create_http_exception(e, get_exception_status_code(e))
    return BlockchainHealthDTO(**health)
