import pytest

from app.api.routers.user_router import get_profile_service, get_user_repository
from app.api.services.profile_service import ProfileService
from app.api.services.sync_service import SyncService, get_sync_service
from app.core.exceptions import RpcUnavailableError, SyncInProgressError
from app.infrastructure.blockchain.registry_events import OnChainProfile
from app.infrastructure.ipfs.ipfs_service import IPFSService
from app.main import app

pytestmark = pytest.mark.anyio("asyncio")

PROFILE_URI = 'data:application/json,{"name":"Ana","title":"Auditor","languages":["pt","en"]}'


class NullCache:
    def generate_key(self, prefix, *args):
        return ":".join([prefix, *map(str, args)])

    async def get(self, key):
        return None

    async def set(self, key, value, expire=None):
        return True


@pytest.fixture
def sync_service(chain, cursor_repo, user_repo, engine):
    service = SyncService(
        chain_client=chain,
        cursor_repository=cursor_repo,
        users=user_repo,
        engine=engine,
    )
    app.dependency_overrides[get_sync_service] = lambda: service
    app.dependency_overrides[get_user_repository] = lambda: user_repo
    app.dependency_overrides[get_profile_service] = lambda: ProfileService(
        users=user_repo, ipfs=IPFSService(gateway_url="http://ipfs.test"), cache=NullCache()
    )
    return service


@pytest.mark.anyio
async def test_health_endpoint(async_client):
    response = await async_client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.anyio
async def test_run_returns_camel_case_summary(
    async_client, sync_service, chain, make_log, make_wallet
):
    chain.height = 50
    chain.logs = [make_log(make_wallet(1), 12)]

    response = await async_client.post("/api/v1/sync/run")

    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    data = payload["data"]
    assert data["fromBlock"] == 0
    assert data["toBlock"] == 49
    assert data["eventsApplied"] == 1
    assert data["lastSyncedBlock"] == 49


@pytest.mark.anyio
async def test_run_reports_up_to_date(async_client, sync_service, chain, cursor_repo, registry_address):
    await cursor_repo.advance(registry_address, 49)
    chain.height = 50

    response = await async_client.post("/api/v1/sync/run", json={})

    assert response.status_code == 200
    assert response.json()["message"] == "Already up to date"


@pytest.mark.anyio
async def test_run_conflicts_when_busy(async_client, sync_service, monkeypatch, registry_address):
    async def busy(self, contract_address=None):
        raise SyncInProgressError(registry_address)

    monkeypatch.setattr(SyncService, "run_sync", busy)

    response = await async_client.post("/api/v1/sync/run")

    assert response.status_code == 409
    assert response.json()["detail"]["error_code"] == "SYNC_IN_PROGRESS"


@pytest.mark.anyio
async def test_run_failure_carries_cause_and_cursor(async_client, sync_service, chain):
    chain.height_error = RpcUnavailableError("provider down")

    response = await async_client.post("/api/v1/sync/run")

    assert response.status_code == 503
    detail = response.json()["detail"]
    assert detail["error_code"] == "SYNC_RUN_FAILED"
    assert detail["details"]["cause_code"] == "RPC_UNAVAILABLE"
    assert detail["details"]["last_synced_block"] is None


@pytest.mark.anyio
async def test_run_rejects_invalid_contract_address(async_client, sync_service):
    response = await async_client.post(
        "/api/v1/sync/run", json={"contract_address": "0x1234"}
    )

    assert response.status_code == 400
    assert response.json()["detail"]["error_code"] == "INVALID_WALLET_ADDRESS"


@pytest.mark.anyio
async def test_status_reports_cursor(async_client, sync_service, cursor_repo, registry_address):
    await cursor_repo.advance(registry_address, 77)

    response = await async_client.get("/api/v1/sync/status")

    assert response.status_code == 200
    data = response.json()
    assert data["contractAddress"] == registry_address
    assert data["lastSyncedBlock"] == 77
    assert data["running"] is False
    assert data["state"] == "idle"


@pytest.mark.anyio
async def test_blockchain_health(async_client, sync_service, chain):
    chain.height = 1234

    response = await async_client.get("/api/v1/sync/health")

    assert response.status_code == 200
    data = response.json()
    assert data["connected"] is True
    assert data["blockNumber"] == 1234
    assert data["registryDeployed"] is True


@pytest.mark.anyio
async def test_blockchain_health_when_rpc_down(async_client, sync_service, chain):
    chain.height_error = RpcUnavailableError("timeout")

    response = await async_client.get("/api/v1/sync/health")

    assert response.status_code == 200
    data = response.json()
    assert data["connected"] is False
    assert data["error"] == "timeout"


@pytest.mark.anyio
async def test_get_mirrored_user_after_sync(
    async_client, sync_service, chain, make_log, make_wallet
):
    chain.height = 20
    chain.logs = [make_log(make_wallet(5), 3, user_type=2)]
    await async_client.post("/api/v1/sync/run")

    response = await async_client.get(f"/api/v1/users/{make_wallet(5)}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["walletAddress"] == make_wallet(5)
    assert data["userType"] == 2
    assert [s["skill"] for s in data["skills"]] == ["solidity", "python"]
    assert data["profile"] is None


@pytest.mark.anyio
async def test_get_user_resolves_inline_profile(
    async_client, sync_service, chain, make_log, make_wallet
):
    wallet = make_wallet(6)
    chain.height = 20
    chain.logs = [make_log(wallet, 3)]
    chain.profiles[wallet] = OnChainProfile(
        metadata_uri=PROFILE_URI,
        user_type=1,
        registration_time=1,
        is_active=True,
        is_verified=True,
        location="Faro",
    )
    await async_client.post("/api/v1/sync/run")

    response = await async_client.get(f"/api/v1/users/{wallet}?resolve_profile=true")

    assert response.status_code == 200
    profile = response.json()["data"]["profile"]
    assert profile["name"] == "Ana"
    assert profile["title"] == "Auditor"
    assert profile["languages"] == ["pt", "en"]


@pytest.mark.anyio
async def test_unknown_user_is_404(async_client, sync_service, make_wallet):
    response = await async_client.get(f"/api/v1/users/{make_wallet(404)}")

    assert response.status_code == 404
    assert response.json()["detail"]["error_code"] == "IDENTITY_NOT_FOUND"
