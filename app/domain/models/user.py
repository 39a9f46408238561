"""
Mirrored user models for the SafeGig registry mirror.
Documents are only ever created from confirmed on-chain registration events.
"""

from datetime import datetime, timezone
from enum import IntEnum
from typing import List, Optional

from pydantic import BaseModel, Field


class UserType(IntEnum):
    """On-chain registry user type (uint8)."""

    NONE = 0
    FREELANCER = 1
    CLIENT = 2
    BOTH = 3


class MirroredSkill(BaseModel):
    """Skill embedded in a mirrored user document. Duplicates are kept."""

    skill: str = Field(..., description="Free-text skill")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Created at",
    )


class MirroredUser(BaseModel):
    """User mirrored from a UserRegistered event."""

    wallet_address: str = Field(..., description="Lowercase wallet address")
    metadata_uri: Optional[str] = Field(None, description="Off-chain profile pointer")
    user_type: UserType = Field(UserType.NONE, description="Registry user type")
    location: Optional[str] = Field(None, description="Location")
    is_active: bool = Field(True, description="Active on-chain")
    is_verified: bool = Field(False, description="Verified on-chain")
    registration_time: Optional[int] = Field(None, description="Registration epoch seconds")
    last_synced_block: Optional[int] = Field(None, description="Block the registration was observed in")
    skills: List[MirroredSkill] = Field(default_factory=list, description="Skills")
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Created at",
    )


class MirroredProfile(BaseModel):
    """Profile resolved on read from a user's metadata URI."""

    wallet_address: str = Field(..., description="Lowercase wallet address")
    metadata_uri: str = Field(..., description="URI the profile was resolved from")
    name: Optional[str] = Field(None, description="Display name")
    title: Optional[str] = Field(None, description="Title")
    bio: Optional[str] = Field(None, description="Bio")
    avatar_ipfs_hash: Optional[str] = Field(None, description="Avatar IPFS hash")
    languages: List[str] = Field(default_factory=list, description="Languages")
    experience: Optional[str] = Field(None, description="Experience")
    hourly_rate: Optional[str] = Field(None, description="Hourly rate")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Updated at",
    )
