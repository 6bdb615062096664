# D:\city_chain_project\contributor_sync\contributor_sync\tests\test_supervisor.py
# -*- coding: utf-8 -*-
"""
WorkloadSupervisor: validator 数 0 ⇄ 正 の遷移でワーカーバッチを起動 / 停止
"""
from __future__ import annotations

import asyncio

import pytest

from contributor_sync.data_models import SupervisorState
from contributor_sync.errors import SubscriptionClosedError
from contributor_sync.supervisor import WorkloadSupervisor
from contributor_sync.worker_pool import TransactionWorkerPool

from .helpers import FakeCounter, LiveSource, RecordingSender, delete, eventually, insert, spec, update

SPECS = [spec("tx-a", cadence=3600), spec("tx-b", cadence=3600)]


@pytest.fixture
def pool() -> TransactionWorkerPool:
    return TransactionWorkerPool(SPECS, RecordingSender(gate=asyncio.Event()))


@pytest.fixture
def supervisor(counter, pool) -> WorkloadSupervisor:
    return WorkloadSupervisor(counter, pool)


async def _cleanup(pool: TransactionWorkerPool) -> None:
    handles = pool.handles
    pool.stop()
    await asyncio.gather(*handles, return_exceptions=True)


@pytest.mark.asyncio
async def test_starts_idle_when_no_validators(supervisor, counter, pool):
    counter.value = 0
    assert await supervisor.bootstrap() is SupervisorState.IDLE
    assert pool.handles == set()


@pytest.mark.asyncio
async def test_bootstrap_with_validators_starts_batch(supervisor, counter, pool):
    counter.value = 3
    assert await supervisor.bootstrap() is SupervisorState.ACTIVE
    assert {t.get_name() for t in pool.handles} == {"tx-a", "tx-b"}
    await _cleanup(pool)


@pytest.mark.asyncio
async def test_zero_to_one_to_zero(supervisor, counter, pool):
    await supervisor.bootstrap()
    assert supervisor.state is SupervisorState.IDLE

    counter.value = 1
    assert await supervisor.on_notification(insert("v1", wallet="W1")) is SupervisorState.ACTIVE
    handles = pool.handles
    assert {t.get_name() for t in handles} == {"tx-a", "tx-b"}

    counter.value = 0
    assert await supervisor.on_notification(delete("v1")) is SupervisorState.IDLE
    assert pool.handles == set()

    await asyncio.gather(*handles, return_exceptions=True)
    assert all(t.cancelled() for t in handles)


@pytest.mark.asyncio
async def test_insert_while_active_is_noop(supervisor, counter, pool):
    counter.value = 1
    await supervisor.bootstrap()
    handles = pool.handles

    counter.value = 2
    await supervisor.on_notification(insert("v2", wallet="W2"))
    assert pool.handles == handles
    await _cleanup(pool)


@pytest.mark.asyncio
async def test_delete_with_remaining_validators_keeps_batch(supervisor, counter, pool):
    counter.value = 2
    await supervisor.bootstrap()

    counter.value = 1
    assert await supervisor.on_notification(delete("v1")) is SupervisorState.ACTIVE
    assert len(pool.handles) == 2
    await _cleanup(pool)


@pytest.mark.asyncio
async def test_count_failure_neither_starts_nor_stops(supervisor, counter, pool):
    counter.error = RuntimeError("count timeout")
    assert await supervisor.bootstrap() is SupervisorState.IDLE
    assert await supervisor.on_notification(insert("v1", wallet="W1")) is SupervisorState.IDLE

    counter.error = None
    counter.value = 1
    await supervisor.on_notification(insert("v1", wallet="W1"))
    assert supervisor.running

    counter.error = RuntimeError("count timeout")
    assert await supervisor.on_notification(delete("v1")) is SupervisorState.ACTIVE
    await _cleanup(pool)


@pytest.mark.asyncio
async def test_other_operations_do_not_recount(supervisor, counter):
    await supervisor.bootstrap()
    calls = counter.calls
    await supervisor.on_notification(update("v1"))
    assert counter.calls == calls


@pytest.mark.asyncio
async def test_run_follows_validator_stream_and_fails_on_end(supervisor, counter, pool, validator_source):
    task = asyncio.create_task(supervisor.run(validator_source))

    counter.value = 1
    validator_source.push(insert("v1", wallet="W1"))
    await eventually(lambda: supervisor.running)

    counter.value = 0
    validator_source.push(delete("v1"))
    await eventually(lambda: not supervisor.running)

    validator_source.push(None)
    with pytest.raises(SubscriptionClosedError):
        await task


@pytest.mark.asyncio
async def test_run_wraps_stream_errors(supervisor, validator_source):
    validator_source.push(ConnectionError("lost"))
    with pytest.raises(SubscriptionClosedError) as info:
        await supervisor.run(validator_source)
    assert isinstance(info.value.cause, ConnectionError)


class _InsertDuringFirstCount(FakeCounter):
    """1 回目のカウント中に validator が 1 件増え、その insert が流れる"""

    def __init__(self, source: LiveSource) -> None:
        super().__init__(0)
        self.source = source

    async def count(self, filter_=None) -> int:
        result = await super().count(filter_)
        if self.calls == 1:
            self.value = 1
            self.source.emit(insert("v1", wallet="W1"))
        return result


@pytest.mark.asyncio
async def test_insert_during_bootstrap_count_is_not_lost(pool):
    source = LiveSource()
    counter = _InsertDuringFirstCount(source)
    supervisor = WorkloadSupervisor(counter, pool)

    task = asyncio.create_task(supervisor.run(source))
    await eventually(lambda: supervisor.running)

    assert source.dropped == 0
    assert counter.calls == 2        # bootstrap + insert 後の再カウント

    source.emit(None)
    with pytest.raises(SubscriptionClosedError):
        await task
    await _cleanup(pool)
