import copy
import itertools
import os
import sys
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

import pytest
from eth_abi import encode as abi_encode
from httpx import ASGITransport, AsyncClient
from asgi_lifespan import LifespanManager

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
os.environ.setdefault("ANYIO_BACKEND", "asyncio")

REGISTRY_ADDRESS = "0x" + "ab" * 20

os.environ["ENVIRONMENT"] = "test"
os.environ["SYNC_INTERVAL_SECONDS"] = "0"
os.environ["REGISTRY_CONTRACT_ADDRESS"] = REGISTRY_ADDRESS

from app.main import app  # noqa: E402
from app.api.services.sync_engine import BatchSyncEngine  # noqa: E402
from app.core.exceptions import RpcRangeTooLargeError  # noqa: E402
from app.domain.repositories.sync_cursor_repository import SyncCursorRepository  # noqa: E402
from app.domain.repositories.user_repository import UserRepository  # noqa: E402
from app.infrastructure.blockchain.registry_events import (  # noqa: E402
    USER_REGISTERED_TOPIC,
    OnChainProfile,
    RawEvent,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


def wallet(n: int) -> str:
    """Deterministic lowercase wallet address."""
    return "0x" + f"{n:040x}"


def registration_log(
    wallet_address: str,
    block_number: int,
    log_index: int = 0,
    user_type: int = 1,
    timestamp: int = 1_700_000_000,
) -> RawEvent:
    """Build a UserRegistered log the way eth_getLogs returns it."""
    user_topic = bytes(12) + bytes.fromhex(wallet_address[2:])
    return RawEvent(
        address=REGISTRY_ADDRESS,
        block_number=block_number,
        log_index=log_index,
        topics=[bytes.fromhex(USER_REGISTERED_TOPIC[2:]), user_topic],
        data=abi_encode(["uint8", "uint256"], [user_type, timestamp]),
    )


class FakeCollection:
    """In-memory stand-in for the subset of a motor collection the repositories use."""

    def __init__(self):
        self.documents: List[Dict[str, Any]] = []
        self.indexes: List[Any] = []
        self.fail_writes: Optional[Exception] = None
        self.acknowledged = True
        self._ids = itertools.count(1)

    @staticmethod
    def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
        return all(doc.get(k) == v for k, v in query.items())

    async def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return kwargs.get("name", "index")

    async def find_one(self, query: Dict[str, Any], projection: Optional[Dict[str, Any]] = None):
        for doc in self.documents:
            if self._matches(doc, query):
                if projection:
                    return {k: doc[k] for k in projection if k in doc}
                return copy.deepcopy(doc)
        return None

    async def count_documents(self, query: Dict[str, Any]) -> int:
        return sum(1 for doc in self.documents if self._matches(doc, query))

    async def update_one(self, query: Dict[str, Any], update: Dict[str, Any], upsert: bool = False):
        if self.fail_writes is not None:
            raise self.fail_writes

        for doc in self.documents:
            if self._matches(doc, query):
                doc.update(copy.deepcopy(update.get("$set", {})))
                for key, value in update.get("$max", {}).items():
                    if key not in doc or doc[key] < value:
                        doc[key] = value
                return SimpleNamespace(
                    acknowledged=self.acknowledged, matched_count=1, upserted_id=None
                )

        if not upsert:
            return SimpleNamespace(acknowledged=self.acknowledged, matched_count=0, upserted_id=None)

        doc = {"_id": next(self._ids), **query}
        doc.update(copy.deepcopy(update.get("$setOnInsert", {})))
        doc.update(copy.deepcopy(update.get("$set", {})))
        doc.update(update.get("$max", {}))
        self.documents.append(doc)
        return SimpleNamespace(
            acknowledged=self.acknowledged, matched_count=0, upserted_id=doc["_id"]
        )


class FakeChainClient:
    """Scriptable chain client. Logs are returned in reverse order to exercise sorting."""

    def __init__(self, height: int = 0, logs: Optional[List[RawEvent]] = None):
        self.height = height
        self.logs: List[RawEvent] = list(logs or [])
        self.code = b"\x60\x80"
        self.max_window: Optional[int] = None
        self.fail_from_block: Optional[int] = None
        self.failure: Exception = RuntimeError("boom")
        self.height_error: Optional[Exception] = None
        self.profiles: Dict[str, OnChainProfile] = {}
        self.query_calls: List[tuple] = []
        self.profile_calls: List[str] = []

    async def current_height(self) -> int:
        if self.height_error is not None:
            raise self.height_error
        return self.height

    async def code_at(self, address: str) -> bytes:
        if self.height_error is not None:
            raise self.height_error
        return self.code

    async def query_events(self, address, event_signature, from_block, to_block):
        self.query_calls.append((from_block, to_block))
        if self.max_window is not None and to_block - from_block + 1 > self.max_window:
            raise RpcRangeTooLargeError(from_block, to_block)
        if self.fail_from_block is not None and from_block <= self.fail_from_block <= to_block:
            raise self.failure
        found = [e for e in self.logs if from_block <= e.block_number <= to_block]
        return list(reversed(found))

    async def get_user_profile(self, registry_address, wallet_address):
        self.profile_calls.append(wallet_address)
        return self.profiles.get(
            wallet_address,
            OnChainProfile(
                metadata_uri=f"ipfs://cid-{wallet_address[-4:]}",
                user_type=1,
                registration_time=1_700_000_000,
                is_active=True,
                is_verified=False,
                location="Lisbon",
                skills=["solidity", "python"],
            ),
        )


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def make_log() -> Callable[..., RawEvent]:
    return registration_log


@pytest.fixture
def make_wallet() -> Callable[[int], str]:
    return wallet


@pytest.fixture
def registry_address() -> str:
    return REGISTRY_ADDRESS


@pytest.fixture
def users_collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def profiles_collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def cursor_collection() -> FakeCollection:
    return FakeCollection()


@pytest.fixture
def user_repo(users_collection, profiles_collection) -> UserRepository:
    return UserRepository(collection=users_collection, profiles_collection=profiles_collection)


@pytest.fixture
def cursor_repo(cursor_collection) -> SyncCursorRepository:
    return SyncCursorRepository(collection=cursor_collection)


@pytest.fixture
def chain() -> FakeChainClient:
    return FakeChainClient()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_engine(chain, cursor_repo, user_repo, sleep) -> Callable[..., BatchSyncEngine]:
    """Engine wired to the fakes; keyword arguments override the defaults."""

    def _make(**overrides) -> BatchSyncEngine:
        options = dict(
            deployment_block=0,
            batch_size=10,
            max_range=1000,
            inter_batch_delay=0.1,
            confirmation_blocks=1,
            sleep=sleep,
        )
        options.update(overrides)
        return BatchSyncEngine(chain, cursor_repo, user_repo, **options)

    return _make


@pytest.fixture
def engine(make_engine) -> BatchSyncEngine:
    return make_engine()


@pytest.fixture
async def async_client():
    """Shared HTTPX async client with FastAPI lifespan handling."""
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    app.dependency_overrides.clear()
