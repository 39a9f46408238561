"""
MongoDB repository for sync cursors.
One document per watched contract address.
"""

from datetime import datetime, timezone
from typing import Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from app.core.config import get_mongodb_database_name, get_mongodb_url
from app.core.exceptions import CursorWriteFailedError, DatabaseError
from app.core.logging import get_logger
from app.domain.models.sync_state import SyncCursor
from app.infrastructure.blockchain.address_utils import normalize_address

logger = get_logger(__name__)


class SyncCursorRepository:
    """Repository for per-contract sync cursors in MongoDB."""

    def __init__(self, collection: Optional[AsyncIOMotorCollection] = None):
        """
        Initialize the repository.

        Args:
            collection: Pre-built collection (skips connecting on first use)
        """
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.collection: Optional[AsyncIOMotorCollection] = collection
        self._initialized = collection is not None

    async def initialize(self):
        """Initialize MongoDB connection and collection."""
        if self._initialized:
            return

        try:
            mongodb_url = get_mongodb_url()
            database_name = get_mongodb_database_name()

            self.client = AsyncIOMotorClient(mongodb_url)
            self.database = self.client[database_name]
            self.collection = self.database["sync_state"]

            await self._create_indexes()

            self._initialized = True
            logger.info(
                f"SyncCursorRepository initialized with database: {database_name}"
            )

        except Exception as e:
            logger.error(f"Failed to initialize SyncCursorRepository: {e}")
            raise DatabaseError(f"Failed to initialize SyncCursorRepository: {e}") from e

    async def _create_indexes(self):
        """Create the unique index backing the one-cursor-per-address invariant."""
        await self.collection.create_index(
            [("contract_address", ASCENDING)],
            unique=True,
            name="contract_address_unique",
        )

    async def get(self, contract_address: str) -> Optional[int]:
        """
        Get the last synced block for a contract.

        Args:
            contract_address: Watched contract address

        Returns:
            Last committed block, or None if the address was never synced
        """
        cursor = await self.get_cursor(contract_address)
        return cursor.last_synced_block if cursor else None

    async def get_cursor(self, contract_address: str) -> Optional[SyncCursor]:
        """Get the full cursor document for a contract."""
        await self.initialize()

        address = normalize_address(contract_address)
        try:
            doc = await self.collection.find_one({"contract_address": address})
        except PyMongoError as e:
            raise DatabaseError(
                f"Failed to read cursor for {address}", {"error": str(e)}
            ) from e
        if not doc:
            return None
        return SyncCursor(
            contract_address=doc["contract_address"],
            last_synced_block=doc["last_synced_block"],
            updated_at=doc.get("updated_at") or datetime.now(timezone.utc),
        )

    async def advance(self, contract_address: str, new_block: int) -> None:
        """
        Persist a new cursor position.

        Uses `$max` so a stale or out-of-order write can never move the cursor
        backwards.

        Args:
            contract_address: Watched contract address
            new_block: Last block of the window that was fully applied

        Raises:
            CursorWriteFailedError: If the write fails or is not acknowledged
        """
        await self.initialize()
        address = normalize_address(contract_address)

        try:
            result = await self.collection.update_one(
                {"contract_address": address},
                {
                    "$max": {"last_synced_block": int(new_block)},
                    "$set": {"updated_at": datetime.now(timezone.utc)},
                },
                upsert=True,
            )
        except PyMongoError as e:
            logger.critical(
                f"Cursor write failed for {address} at block {new_block}: {e}"
            )
            raise CursorWriteFailedError(
                address, new_block, {"error": str(e)}
            ) from e

        if not result.acknowledged:
            logger.critical(f"Cursor write not acknowledged for {address}")
            raise CursorWriteFailedError(
                address, new_block, {"error": "write not acknowledged"}
            )

        logger.debug(f"Cursor for {address} advanced to {new_block}")


# Global repository instance
sync_cursor_repository = SyncCursorRepository()
