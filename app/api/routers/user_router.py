"""
Read-only access to mirrored users.
"""

from fastapi import APIRouter, Depends, Query

from app.api.dto.sync_dto import MirroredUserDTO, MirroredUserResponseDTO
from app.api.services.profile_service import ProfileService, profile_service
from app.core.exceptions import (
    IdentityNotFoundError,
    MirrorException,
    create_http_exception,
    get_exception_status_code,
)
from app.domain.repositories.user_repository import UserRepository, user_repository

router = APIRouter()


def get_user_repository() -> UserRepository:
    return user_repository


def get_profile_service() -> ProfileService:
    return profile_service


@router.get("/{wallet_address}", response_model=MirroredUserResponseDTO)
async def get_user(
    wallet_address: str,
    resolve_profile: bool = Query(False, description="Resolve metadata URI into a profile"),
    users: UserRepository = Depends(get_user_repository),
    profiles: ProfileService = Depends(get_profile_service),
) -> MirroredUserResponseDTO:
    """
    Get a mirrored user by wallet address.

    Only wallets seen in a confirmed UserRegistered event exist here.
    """
    try:
        user = await users.get_user(wallet_address)
        if not user:
            raise IdentityNotFoundError(wallet_address)
    except MirrorException as e:
        raise create_http_exception(e, get_exception_status_code(e))

    profile = await profiles.resolve_profile(user) if resolve_profile else None

    return MirroredUserResponseDTO(
        success=True,
        message="User found",
        data=MirroredUserDTO.from_user(user, profile),
    )
