from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.domain.models.sync_state import SyncSummary
from app.domain.models.user import MirroredProfile, MirroredUser


class CamelModel(BaseModel):
    """Serializes with camelCase aliases; accepts either form on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Request DTOs
class SyncRunRequestDTO(BaseModel):
    """Request DTO for a manual sync run."""

    contract_address: Optional[str] = Field(
        None, description="Contract to sync (defaults to the configured registry)"
    )


# Response DTOs
class SyncSummaryDTO(CamelModel):
    """Summary of a sync run."""

    contract_address: str = Field(..., description="Synced contract")
    from_block: int = Field(..., description="First block of the run")
    to_block: int = Field(..., description="Last block targeted by the run")
    events_found: int = Field(0, description="Logs returned by the provider")
    events_applied: int = Field(0, description="Users created")
    events_skipped: int = Field(0, description="Logs skipped as undecodable")
    duplicates: int = Field(0, description="Registrations already mirrored")
    last_synced_block: Optional[int] = Field(None, description="Cursor after the run")
    cancelled: bool = Field(False, description="Run stopped at a window boundary")

    @classmethod
    def from_summary(cls, summary: SyncSummary) -> "SyncSummaryDTO":
        return cls(
            contract_address=summary.contract_address,
            from_block=summary.from_block,
            to_block=summary.to_block,
            events_found=summary.events_found,
            events_applied=summary.events_applied,
            events_skipped=summary.events_skipped,
            duplicates=summary.duplicates,
            last_synced_block=summary.last_synced_block,
            cancelled=summary.cancelled,
        )


class SyncRunResponseDTO(BaseModel):
    """Response DTO for a sync run."""

    success: bool = Field(..., description="Success status")
    message: str = Field(..., description="Response message")
    data: Optional[SyncSummaryDTO] = Field(None, description="Run summary")


class SyncStatusDTO(CamelModel):
    """Cursor and engine state for a contract."""

    contract_address: str = Field(..., description="Contract address")
    last_synced_block: Optional[int] = Field(None, description="Last committed block")
    updated_at: Optional[datetime] = Field(None, description="Cursor updated at")
    running: bool = Field(False, description="Run in progress")
    state: str = Field(..., description="Engine state")
    config: Dict[str, Any] = Field(default_factory=dict, description="Sync configuration")


class BlockchainHealthDTO(CamelModel):
    """RPC and registry health."""

    connected: bool = Field(..., description="RPC reachable")
    block_number: Optional[int] = Field(None, description="Current block")
    registry_deployed: Optional[bool] = Field(None, description="Code exists at registry")
    registry_address: str = Field(..., description="Registry address")
    error: Optional[str] = Field(None, description="Failure reason")


class SkillDTO(CamelModel):
    skill: str
    created_at: datetime


class ProfileDTO(CamelModel):
    """Profile resolved from metadata."""

    metadata_uri: str
    name: Optional[str] = None
    title: Optional[str] = None
    bio: Optional[str] = None
    avatar_ipfs_hash: Optional[str] = None
    languages: List[str] = Field(default_factory=list)
    experience: Optional[str] = None
    hourly_rate: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: MirroredProfile) -> "ProfileDTO":
        return cls(**profile.model_dump(exclude={"wallet_address", "updated_at"}))


class MirroredUserDTO(CamelModel):
    """Mirrored user as served to dashboards."""

    wallet_address: str
    metadata_uri: Optional[str] = None
    user_type: int
    location: Optional[str] = None
    is_active: bool
    is_verified: bool
    registration_time: Optional[int] = None
    last_synced_block: Optional[int] = None
    skills: List[SkillDTO] = Field(default_factory=list)
    profile: Optional[ProfileDTO] = None

    @classmethod
    def from_user(
        cls, user: MirroredUser, profile: Optional[MirroredProfile] = None
    ) -> "MirroredUserDTO":
        return cls(
            wallet_address=user.wallet_address,
            metadata_uri=user.metadata_uri,
            user_type=int(user.user_type),
            location=user.location,
            is_active=user.is_active,
            is_verified=user.is_verified,
            registration_time=user.registration_time,
            last_synced_block=user.last_synced_block,
            skills=[SkillDTO(skill=s.skill, created_at=s.created_at) for s in user.skills],
            profile=ProfileDTO.from_profile(profile) if profile else None,
        )


class MirroredUserResponseDTO(BaseModel):
    """Response DTO for a mirrored user lookup."""

    success: bool = Field(..., description="Success status")
    message: str = Field(..., description="Response message")
    data: Optional[MirroredUserDTO] = Field(None, description="Mirrored user")
