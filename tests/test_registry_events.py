import pytest
from eth_abi import encode as abi_encode
from eth_utils import keccak, to_hex

from app.core.exceptions import EventDecodeError
from app.domain.models.user import UserType
from app.infrastructure.blockchain.registry_events import (
    USER_REGISTERED_TOPIC,
    RawEvent,
    decode_user_profile,
    decode_user_registered,
)

WALLET = "0x" + "1f" * 20


def test_topic_matches_event_signature():
    assert USER_REGISTERED_TOPIC == to_hex(keccak(text="UserRegistered(address,uint8,uint256)"))


def test_decodes_registration(make_log):
    event = decode_user_registered(make_log(WALLET, 88, log_index=3, user_type=3, timestamp=1234))

    assert event.wallet_address == WALLET
    assert event.user_type == UserType.BOTH
    assert event.registration_time == 1234
    assert (event.block_number, event.log_index) == (88, 3)


def test_accepts_hex_string_topics_and_data(make_log):
    raw = make_log(WALLET, 1)
    hex_event = RawEvent(
        address=raw.address,
        block_number=raw.block_number,
        log_index=raw.log_index,
        topics=[to_hex(t) for t in raw.topics],
        data=to_hex(raw.data),
    )

    assert decode_user_registered(hex_event).wallet_address == WALLET


def test_rejects_foreign_topic(make_log):
    raw = make_log(WALLET, 1)
    foreign = RawEvent(
        address=raw.address,
        block_number=1,
        log_index=0,
        topics=[keccak(text="Transfer(address,address,uint256)"), raw.topics[1]],
        data=raw.data,
    )

    with pytest.raises(EventDecodeError):
        decode_user_registered(foreign)


def test_rejects_dirty_address_padding(make_log):
    raw = make_log(WALLET, 1)
    dirty = RawEvent(
        address=raw.address,
        block_number=1,
        log_index=0,
        topics=[raw.topics[0], b"\x01" + raw.topics[1][1:]],
        data=raw.data,
    )

    with pytest.raises(EventDecodeError):
        decode_user_registered(dirty)


def test_rejects_unknown_user_type(make_log):
    with pytest.raises(EventDecodeError) as exc_info:
        decode_user_registered(make_log(WALLET, 9, user_type=7))

    assert exc_info.value.details == {"block_number": 9, "log_index": 0}


def test_rejects_truncated_data(make_log):
    raw = make_log(WALLET, 1)
    truncated = RawEvent(
        address=raw.address,
        block_number=1,
        log_index=0,
        topics=raw.topics,
        data=abi_encode(["uint8"], [1]),
    )

    with pytest.raises(EventDecodeError):
        decode_user_registered(truncated)


def test_decodes_registry_profile_tuple():
    profile = decode_user_profile(
        ("ipfs://bafy", 1, 1_700_000_000, True, False, "Berlin"), ["go", "sql"]
    )

    assert profile.metadata_uri == "ipfs://bafy"
    assert profile.is_active is True
    assert profile.location == "Berlin"
    assert profile.skills == ["go", "sql"]


def test_rejects_short_profile_tuple():
    with pytest.raises(EventDecodeError):
        decode_user_profile(("ipfs://bafy", 1))
