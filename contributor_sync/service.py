# D:\city_chain_project\contributor_sync\contributor_sync\service.py
# -*- coding: utf-8 -*-
"""
contributor_sync.service
========================
multiplexer（台帳ミラー）と supervisor（ワークロード制御）を同時に走らせる。
どちらかが落ちたら、もう片方を止め、ワーカーも全部キャンセルして例外を上げる。

利用方法
--------
service = build_service(settings)
await service.run()
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from .config import Settings
from .data_models import NodeType
from .mirror import ContributorMirror
from .multiplexer import StreamMultiplexer
from .base import ChangeSource
from .sender import HttpTransactionSender
from .storage.mongodb import (
    MongoChangeSource,
    MongoContributorLedger,
    MongoPopulationCounter,
    create_client,
)
from .supervisor import WorkloadSupervisor
from .worker_pool import TransactionWorkerPool

logger = logging.getLogger(__name__)


@dataclass
class ContributorSyncService:
    multiplexer: Optional[StreamMultiplexer] = None
    supervisor: Optional[WorkloadSupervisor] = None
    supervisor_source: Optional[ChangeSource] = None
    on_start: List[Callable[[], Awaitable[Any]]] = field(default_factory=list)
    on_close: List[Callable[[], Awaitable[Any]]] = field(default_factory=list)

    async def run(self) -> None:
        if self.multiplexer is None and self.supervisor is None:
            raise ValueError("nothing to run")
        if self.supervisor is not None and self.supervisor_source is None:
            raise ValueError("supervisor requires a validator change source")

        logger.info("Starting MongoDB watcher...")
        tasks: List[asyncio.Task] = []
        try:
            for hook in self.on_start:
                await hook()
            if self.multiplexer is not None:
                tasks.append(asyncio.create_task(self.multiplexer.run(), name="mirror"))
            if self.supervisor is not None:
                tasks.append(
                    asyncio.create_task(self.supervisor.run(self.supervisor_source), name="supervisor")
                )
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                task.result()  # 例外を表に出す
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if self.supervisor is not None:
                self.supervisor.shutdown()
            await self.aclose()

    async def aclose(self) -> None:
        callbacks, self.on_close = self.on_close, []
        for cb in callbacks:
            try:
                await cb()
            except Exception as exc:
                logger.warning("cleanup failed: %s", exc)


def build_service(cfg: Settings, *, mirror: bool = True, supervise: bool = True) -> ContributorSyncService:
    """設定から MongoDB / HTTP 送信の実装を組み立てる"""
    client = create_client(cfg)
    validators = client[cfg.validator_db][cfg.validator_collection]
    relays = client[cfg.relay_db][cfg.relay_collection]
    ledger_col = client[cfg.ledger_db][cfg.ledger_collection]

    service = ContributorSyncService()

    if mirror:
        ledger = MongoContributorLedger(ledger_col, max_retry=cfg.write_retries)
        service.multiplexer = StreamMultiplexer(
            {
                NodeType.VALIDATOR: MongoChangeSource(validators, cfg.lookup_on_delete),
                NodeType.RELAY: MongoChangeSource(relays, cfg.lookup_on_delete),
            },
            ContributorMirror(ledger),
            queue_size=cfg.queue_size,
        )
        service.on_start.append(ledger.ensure_indexes)

    if supervise:
        sender = HttpTransactionSender(cfg.tx_endpoint, timeout=cfg.tx_timeout)
        pool = TransactionWorkerPool(cfg.worker_specs, sender)
        service.supervisor = WorkloadSupervisor(MongoPopulationCounter(validators), pool)
        service.supervisor_source = MongoChangeSource(validators)
        service.on_close.append(sender.close)

    async def _close_client() -> None:
        client.close()

    service.on_close.append(_close_client)
    return service
