"""
Profile Service.
Fetch-on-read resolution of a mirrored user's metadata URI into a profile.
The sync engine never calls this; mirrored user documents are not modified here.
"""

from typing import Any, Dict, List, Optional

from pymongo.errors import PyMongoError

from app.core.config import settings
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.domain.models.user import MirroredProfile, MirroredUser
from app.domain.repositories.user_repository import UserRepository, user_repository
from app.infrastructure.cache import CacheService, cache_service
from app.infrastructure.ipfs.ipfs_service import IPFSService, MetadataFetchError, ipfs_service

logger = get_logger(__name__)


def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value]
    if isinstance(value, str) and value:
        return [part.strip() for part in value.split(",") if part.strip()]
    return []


def _as_optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class ProfileService:
    """Resolves and stores profiles on read. Last reader wins."""

    def __init__(
        self,
        users: Optional[UserRepository] = None,
        ipfs: Optional[IPFSService] = None,
        cache: Optional[CacheService] = None,
    ) -> None:
        self.user_repository = users or user_repository
        self.ipfs = ipfs or ipfs_service
        self.cache = cache or cache_service

    async def _load_metadata(self, metadata_uri: str) -> Dict[str, Any]:
        cid = self.ipfs.get_cid(metadata_uri)
        if not cid:
            return await self.ipfs.fetch_json(metadata_uri)

        key = self.cache.generate_key("profile_metadata", cid)
        cached = await self.cache.get(key)
        if isinstance(cached, dict):
            return cached

        data = await self.ipfs.fetch_json(metadata_uri)
        await self.cache.set(key, data, settings.PROFILE_CACHE_TTL_SECONDS)
        return data

    def build_profile(
        self, wallet_address: str, metadata_uri: str, data: Dict[str, Any]
    ) -> MirroredProfile:
        """Map marketplace metadata JSON onto profile fields."""
        return MirroredProfile(
            wallet_address=wallet_address,
            metadata_uri=metadata_uri,
            name=_as_optional_str(data.get("name")),
            title=_as_optional_str(data.get("title")),
            bio=_as_optional_str(data.get("bio")),
            avatar_ipfs_hash=_as_optional_str(
                data.get("avatarHash") or data.get("avatar_ipfs_hash")
            ),
            languages=_as_list(data.get("languages")),
            experience=_as_optional_str(data.get("experience")),
            hourly_rate=_as_optional_str(data.get("hourlyRate") or data.get("hourly_rate")),
        )

    async def resolve_profile(self, user: MirroredUser) -> Optional[MirroredProfile]:
        """
        Resolve the profile for a mirrored user.

        A stored profile for the same metadata URI is reused. Resolution
        failures fall back to whatever profile is stored. Profile storage
        errors never fail the read.

        Args:
            user: Mirrored user

        Returns:
            Profile or None if the user has no resolvable metadata
        """
        if not user.metadata_uri:
            return None

        try:
            stored = await self.user_repository.get_profile(user.wallet_address)
        except (PyMongoError, DatabaseError) as e:
            logger.warning(f"Stored profile unavailable for {user.wallet_address}: {e}")
            stored = None

        if stored and stored.metadata_uri == user.metadata_uri:
            return stored

        try:
            data = await self._load_metadata(user.metadata_uri)
        except MetadataFetchError as e:
            logger.warning(f"Could not resolve profile for {user.wallet_address}: {e}")
            return stored

        profile = self.build_profile(user.wallet_address, user.metadata_uri, data)
        try:
            await self.user_repository.save_profile(profile)
        except (PyMongoError, DatabaseError) as e:
            # Next read resolves again
            logger.warning(f"Could not store profile for {user.wallet_address}: {e}")
        logger.info(f"Resolved profile for {user.wallet_address}")
        return profile


profile_service = ProfileService()
