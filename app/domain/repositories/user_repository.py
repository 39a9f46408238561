"""
MongoDB repository for mirrored users.
Registration events are materialized idempotently: first write wins.
"""

from datetime import datetime, timezone
from typing import Iterable, Optional

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from app.core.config import get_mongodb_database_name, get_mongodb_url
from app.core.exceptions import DatabaseError, RepositoryWriteFailedError
from app.core.logging import get_logger, log_user_mirrored
from app.domain.models.user import MirroredProfile, MirroredSkill, MirroredUser, UserType
from app.infrastructure.blockchain.address_utils import normalize_address

logger = get_logger(__name__)


class UserRepository:
    """Repository for mirrored users and their resolved profiles."""

    def __init__(
        self,
        collection: Optional[AsyncIOMotorCollection] = None,
        profiles_collection: Optional[AsyncIOMotorCollection] = None,
    ):
        """
        Initialize the repository.

        Args:
            collection: Pre-built users collection (skips connecting on first use)
            profiles_collection: Pre-built user_profiles collection
        """
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.collection: Optional[AsyncIOMotorCollection] = collection
        self.profiles_collection: Optional[AsyncIOMotorCollection] = profiles_collection
        self._initialized = collection is not None

    async def initialize(self):
        """Initialize MongoDB connection and collections."""
        if self._initialized:
            return

        try:
            mongodb_url = get_mongodb_url()
            database_name = get_mongodb_database_name()

            self.client = AsyncIOMotorClient(mongodb_url)
            self.database = self.client[database_name]
            self.collection = self.database["users"]
            self.profiles_collection = self.database["user_profiles"]

            await self._create_indexes()

            self._initialized = True
            logger.info(f"UserRepository initialized with database: {database_name}")

        except Exception as e:
            logger.error(f"Failed to initialize UserRepository: {e}")
            raise DatabaseError(f"Failed to initialize UserRepository: {e}") from e

    async def _create_indexes(self):
        """Create database indexes."""
        await self.collection.create_index(
            [("wallet_address", ASCENDING)],
            unique=True,
            name="wallet_address_unique",
        )
        await self.collection.create_index(
            [("user_type", ASCENDING)], name="user_type_index"
        )
        await self.profiles_collection.create_index(
            [("wallet_address", ASCENDING)],
            unique=True,
            name="profile_wallet_address_unique",
        )

    async def exists(self, wallet_address: str) -> bool:
        """Check whether a wallet already has a mirrored user."""
        await self.initialize()
        address = normalize_address(wallet_address)
        try:
            doc = await self.collection.find_one({"wallet_address": address}, {"_id": 1})
        except PyMongoError as e:
            raise DatabaseError(
                f"Failed to look up user {address}", {"error": str(e)}
            ) from e
        return doc is not None

    async def upsert_user_from_registration(
        self,
        wallet_address: str,
        user_type: int,
        metadata_uri: Optional[str],
        location: Optional[str],
        is_active: bool,
        is_verified: bool,
        registration_time: Optional[int],
        observed_block: int,
        skills: Iterable[str] = (),
    ) -> bool:
        """
        Materialize a registration event.

        The user and its skills are written as one document with
        `$setOnInsert`, so an existing user is never modified and a partially
        applied event cannot be observed.

        Args:
            wallet_address: Registered wallet (any case)
            user_type: Registry user type
            metadata_uri: Off-chain profile pointer
            location: Location string from the registry
            is_active: Active flag from the registry
            is_verified: Verified flag from the registry
            registration_time: Registration epoch seconds
            observed_block: Block the event was emitted in
            skills: Skills from the registry

        Returns:
            True if a new user was created, False on duplicate/replay

        Raises:
            RepositoryWriteFailedError: If the write fails
        """
        await self.initialize()
        address = normalize_address(wallet_address)

        user = MirroredUser(
            wallet_address=address,
            metadata_uri=metadata_uri or None,
            user_type=UserType(int(user_type)),
            location=location or None,
            is_active=bool(is_active),
            is_verified=bool(is_verified),
            registration_time=registration_time,
            last_synced_block=observed_block,
            skills=[MirroredSkill(skill=s) for s in skills if s],
        )
        document = user.model_dump()
        document["user_type"] = int(user.user_type)
        # Filled from the filter on insert
        document.pop("wallet_address")

        try:
            result = await self.collection.update_one(
                {"wallet_address": address},
                {"$setOnInsert": document},
                upsert=True,
            )
        except DuplicateKeyError:
            # Lost an insert race on the unique index: someone else created it
            log_user_mirrored(address, observed_block, created=False, user_type=int(user_type))
            return False
        except PyMongoError as e:
            logger.error(f"Failed to mirror user {address}: {e}")
            raise RepositoryWriteFailedError(
                f"Failed to mirror user {address}",
                {"wallet_address": address, "block": observed_block, "error": str(e)},
            ) from e

        if not result.acknowledged:
            raise RepositoryWriteFailedError(
                f"Write not acknowledged for user {address}",
                {"wallet_address": address, "block": observed_block},
            )

        created = result.upserted_id is not None
        log_user_mirrored(address, observed_block, created=created, user_type=int(user_type))
        return created

    async def get_user(self, wallet_address: str) -> Optional[MirroredUser]:
        """
        Get a mirrored user by wallet.

        Args:
            wallet_address: Wallet address (any case)

        Returns:
            Mirrored user or None if not found
        """
        await self.initialize()
        doc = await self.collection.find_one(
            {"wallet_address": normalize_address(wallet_address)}
        )
        if not doc:
            return None
        doc.pop("_id", None)
        return MirroredUser(**doc)

    async def count_users(self) -> int:
        """Count mirrored users."""
        await self.initialize()
        return await self.collection.count_documents({})

    async def get_profile(self, wallet_address: str) -> Optional[MirroredProfile]:
        """Get the last resolved profile for a wallet."""
        await self.initialize()
        doc = await self.profiles_collection.find_one(
            {"wallet_address": normalize_address(wallet_address)}
        )
        if not doc:
            return None
        doc.pop("_id", None)
        return MirroredProfile(**doc)

    async def save_profile(self, profile: MirroredProfile) -> None:
        """
        Store a profile resolved on read. Last reader wins.

        Args:
            profile: Resolved profile
        """
        await self.initialize()
        document = profile.model_dump()
        document["updated_at"] = datetime.now(timezone.utc)
        await self.profiles_collection.update_one(
            {"wallet_address": profile.wallet_address},
            {"$set": document},
            upsert=True,
        )


# Global repository instance
user_repository = UserRepository()
