"""
SafeGig registry ABI fragments and event decoding.

Central place for the registry event signature and the read functions the
mirror depends on. Update when the registry contract changes.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

from eth_abi import decode as abi_decode
from eth_utils import keccak, to_hex

from app.core.exceptions import EventDecodeError
from app.domain.models.user import UserType

USER_REGISTERED_SIGNATURE = "UserRegistered(address,uint8,uint256)"
USER_REGISTERED_TOPIC = to_hex(keccak(text=USER_REGISTERED_SIGNATURE))

REGISTRY_ABI = [
    {
        "anonymous": False,
        "inputs": [
            {"indexed": True, "name": "user", "type": "address"},
            {"indexed": False, "name": "userType", "type": "uint8"},
            {"indexed": False, "name": "timestamp", "type": "uint256"},
        ],
        "name": "UserRegistered",
        "type": "event",
    },
    {
        "inputs": [{"name": "", "type": "address"}],
        "name": "userProfiles",
        "outputs": [
            {"name": "metadataURI", "type": "string"},
            {"name": "userType", "type": "uint8"},
            {"name": "registrationTime", "type": "uint256"},
            {"name": "isActive", "type": "bool"},
            {"name": "isVerified", "type": "bool"},
            {"name": "location", "type": "string"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"name": "user", "type": "address"}],
        "name": "getUserSkills",
        "outputs": [{"name": "", "type": "string[]"}],
        "stateMutability": "view",
        "type": "function",
    },
]


@dataclass(frozen=True)
class RawEvent:
    """A log as returned by eth_getLogs, reduced to what decoding needs."""

    address: str
    block_number: int
    log_index: int
    topics: Sequence[bytes]
    data: bytes
    transaction_hash: Optional[str] = None

    @property
    def position(self):
        """Replay order key: (block, log index)."""
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class RegistrationEvent:
    """Decoded UserRegistered event."""

    wallet_address: str
    user_type: UserType
    registration_time: int
    block_number: int
    log_index: int


@dataclass
class OnChainProfile:
    """Registry profile read with userProfiles(address)."""

    metadata_uri: str
    user_type: int
    registration_time: int
    is_active: bool
    is_verified: bool
    location: str
    skills: List[str] = field(default_factory=list)


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(value[2:] if value.startswith("0x") else value)
    raise TypeError(f"Unsupported byte value: {type(value).__name__}")


def decode_user_registered(event: RawEvent) -> RegistrationEvent:
    """
    Decode a UserRegistered log.

    Args:
        event: Raw log

    Returns:
        Decoded registration

    Raises:
        EventDecodeError: If the log is not a well-formed UserRegistered event
    """
    context = {"block_number": event.block_number, "log_index": event.log_index}
    try:
        topics = [_as_bytes(t) for t in event.topics]
        if len(topics) != 2 or to_hex(topics[0]) != USER_REGISTERED_TOPIC:
            raise EventDecodeError("Unexpected topics for UserRegistered", context)

        user_topic = topics[1]
        if len(user_topic) != 32 or any(user_topic[:12]):
            raise EventDecodeError("Malformed indexed address topic", context)
        wallet_address = "0x" + user_topic[12:].hex()

        user_type, timestamp = abi_decode(["uint8", "uint256"], _as_bytes(event.data))
    except EventDecodeError:
        raise
    except Exception as e:
        raise EventDecodeError(f"Malformed UserRegistered log: {e}", context) from e

    try:
        parsed_type = UserType(user_type)
    except ValueError as e:
        raise EventDecodeError(f"Unknown user type {user_type}", context) from e

    return RegistrationEvent(
        wallet_address=wallet_address,
        user_type=parsed_type,
        registration_time=int(timestamp),
        block_number=event.block_number,
        log_index=event.log_index,
    )


def decode_user_profile(result: Sequence[Any], skills: Sequence[str] = ()) -> OnChainProfile:
    """
    Build an OnChainProfile from the userProfiles(address) return tuple.

    Raises:
        EventDecodeError: If the tuple does not match the registry struct
    """
    try:
        metadata_uri, user_type, registration_time, is_active, is_verified, location = result
        return OnChainProfile(
            metadata_uri=str(metadata_uri),
            user_type=int(user_type),
            registration_time=int(registration_time),
            is_active=bool(is_active),
            is_verified=bool(is_verified),
            location=str(location),
            skills=[str(s) for s in skills],
        )
    except (TypeError, ValueError) as e:
        raise EventDecodeError(f"Malformed userProfiles result: {e}") from e
