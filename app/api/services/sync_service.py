"""
Sync Service.
Wires the chain client, repositories, engine and coordinator behind the trigger API.
"""

from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.exceptions import RpcUnavailableError, ValidationError
from app.core.logging import get_logger
from app.domain.models.sync_state import SyncSummary
from app.domain.repositories.sync_cursor_repository import (
    SyncCursorRepository,
    sync_cursor_repository,
)
from app.domain.repositories.user_repository import UserRepository, user_repository
from app.infrastructure.blockchain.address_utils import normalize_address
from app.infrastructure.blockchain.chain_client import ChainClient, get_chain_client
from app.api.services.sync_coordinator import SyncCoordinator
from app.api.services.sync_engine import BatchSyncEngine

logger = get_logger(__name__)


class SyncService:
    """Entry point for manual and scheduled sync runs."""

    def __init__(
        self,
        chain_client: Optional[ChainClient] = None,
        cursor_repository: Optional[SyncCursorRepository] = None,
        users: Optional[UserRepository] = None,
        engine: Optional[BatchSyncEngine] = None,
        registry_address: Optional[str] = None,
    ) -> None:
        self.chain_client = chain_client or get_chain_client()
        self.cursor_repository = cursor_repository or sync_cursor_repository
        self.user_repository = users or user_repository
        self.engine = engine or BatchSyncEngine(
            self.chain_client, self.cursor_repository, self.user_repository
        )
        self.coordinator = SyncCoordinator(self.engine)
        self.registry_address = registry_address or settings.REGISTRY_CONTRACT_ADDRESS

    def resolve_address(self, contract_address: Optional[str] = None) -> str:
        """Return the normalized target address, defaulting to the registry."""
        target = contract_address or self.registry_address
        if not target:
            raise ValidationError("No contract address given and REGISTRY_CONTRACT_ADDRESS is not set")
        return normalize_address(target)

    async def run_sync(self, contract_address: Optional[str] = None) -> SyncSummary:
        """Run one sync pass. See SyncCoordinator.run for errors."""
        return await self.coordinator.run(self.resolve_address(contract_address))

    async def get_status(self, contract_address: Optional[str] = None) -> Dict[str, Any]:
        """Cursor position and engine state for an address."""
        address = self.resolve_address(contract_address)
        cursor = await self.cursor_repository.get_cursor(address)
        return {
            "contract_address": address,
            "last_synced_block": cursor.last_synced_block if cursor else None,
            "updated_at": cursor.updated_at if cursor else None,
            "running": self.coordinator.is_running(address),
            "state": self.engine.state_of(address).value,
            "config": settings.get_sync_config(),
        }

    async def check_health(self) -> Dict[str, Any]:
        """RPC reachability and registry deployment check."""
        address = self.resolve_address()
        try:
            block_number = await self.chain_client.current_height()
            code = await self.chain_client.code_at(address)
        except RpcUnavailableError as e:
            logger.warning(f"Blockchain health check failed: {e.message}")
            return {
                "connected": False,
                "block_number": None,
                "registry_deployed": None,
                "registry_address": address,
                "error": e.message,
            }

        return {
            "connected": True,
            "block_number": block_number,
            "registry_deployed": len(code) > 0,
            "registry_address": address,
        }


_sync_service: Optional[SyncService] = None


def get_sync_service() -> SyncService:
    """Get the shared sync service, creating it on first use."""
    global _sync_service
    if _sync_service is None:
        _sync_service = SyncService()
    return _sync_service
