import asyncio

import pytest

from app.api.services.sync_coordinator import SyncCoordinator
from app.api.services.sync_scheduler import SyncScheduler
from app.core.exceptions import (
    CursorWriteFailedError,
    SyncInProgressError,
    SyncRunError,
)
from app.domain.models.sync_state import SyncSummary

pytestmark = pytest.mark.anyio("asyncio")


class BlockingEngine:
    """Engine whose run waits until released."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.runs = []

    async def run(self, contract_address, cancel_event=None):
        self.runs.append((contract_address, cancel_event))
        self.started.set()
        await self.release.wait()
        return SyncSummary(contract_address=contract_address, from_block=0, to_block=9)


class FailingEngine:
    def __init__(self, error):
        self.error = error
        self.calls = 0

    async def run(self, contract_address, cancel_event=None):
        self.calls += 1
        raise self.error


@pytest.mark.anyio
async def test_busy_address_rejects_second_trigger(registry_address):
    engine = BlockingEngine()
    coordinator = SyncCoordinator(engine)

    first = asyncio.create_task(coordinator.run(registry_address))
    await engine.started.wait()

    assert coordinator.is_running(registry_address)
    with pytest.raises(SyncInProgressError):
        await coordinator.run(registry_address.upper().replace("0X", "0x"))

    engine.release.set()
    summary = await first
    assert summary.to_block == 9
    assert not coordinator.is_running(registry_address)
    assert len(engine.runs) == 1


@pytest.mark.anyio
async def test_different_addresses_run_independently(registry_address):
    engine = BlockingEngine()
    coordinator = SyncCoordinator(engine)
    other = "0x" + "cd" * 20

    first = asyncio.create_task(coordinator.run(registry_address))
    second = asyncio.create_task(coordinator.run(other))
    await asyncio.sleep(0)
    await engine.started.wait()
    engine.release.set()

    results = await asyncio.gather(first, second)
    assert {r.contract_address for r in results} == {registry_address, other}


@pytest.mark.anyio
async def test_end_to_end_run_through_coordinator(engine, chain, cursor_repo, registry_address):
    chain.height = 25
    coordinator = SyncCoordinator(engine)

    summary = await coordinator.run(registry_address)

    assert summary.last_synced_block == 24
    assert await cursor_repo.get(registry_address) == 24


@pytest.mark.anyio
async def test_scheduler_tick_swallows_run_failures(registry_address):
    cause = CursorWriteFailedError(registry_address, 10)
    engine = FailingEngine(SyncRunError(cause, registry_address, 9))
    scheduler = SyncScheduler(SyncCoordinator(engine), registry_address, interval=60)

    await scheduler.tick()
    await scheduler.tick()

    assert engine.calls == 2


@pytest.mark.anyio
async def test_scheduler_tick_swallows_unexpected_errors(registry_address):
    engine = FailingEngine(RuntimeError("bug"))
    scheduler = SyncScheduler(SyncCoordinator(engine), registry_address, interval=60)

    await scheduler.tick()

    assert engine.calls == 1


@pytest.mark.anyio
async def test_scheduler_runs_immediately_and_stops_cleanly(registry_address):
    engine = BlockingEngine()
    engine.release.set()
    scheduler = SyncScheduler(SyncCoordinator(engine), registry_address, interval=60)

    scheduler.start()
    await engine.started.wait()
    assert scheduler.running

    await scheduler.stop()

    assert not scheduler.running
    assert len(engine.runs) == 1
    # the scheduler's stop signal doubles as the run's cancel event
    _, cancel_event = engine.runs[0]
    assert cancel_event is not None and cancel_event.is_set()
