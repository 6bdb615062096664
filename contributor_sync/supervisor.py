# D:\city_chain_project\contributor_sync\contributor_sync\supervisor.py
# -*- coding: utf-8 -*-
"""
contributor_sync.supervisor
===========================
validator 数に応じてトランザクションワーカーのバッチを起動 / 停止する。

状態遷移
--------
- idle   → active : 起動時のカウント、または insert 通知後の再カウントが正
- active → idle   : delete 通知後の再カウントがちょうど 0 → 全ワーカーをキャンセル

カウントは通知のたびに取り直す（メモリ上のカウンタは持たない）。
カウントと起動 / 停止の間は原子的ではないが、負荷生成用途なので許容する。
カウント失敗は「データなし」とみなし、起動も停止もしない。
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .data_models import ChangeNotification, OperationType, SupervisorState
from .errors import SubscriptionClosedError
from .base import ChangeSource, PopulationCounter
from .worker_pool import TransactionWorkerPool

logger = logging.getLogger(__name__)


class WorkloadSupervisor:
    def __init__(
        self,
        counter: PopulationCounter,
        pool: TransactionWorkerPool,
        population_filter: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._counter = counter
        self._pool = pool
        self._filter = dict(population_filter or {})

    # ------------------------------------------------------------ #
    # 状態
    # ------------------------------------------------------------ #
    @property
    def state(self) -> SupervisorState:
        return SupervisorState.ACTIVE if self._pool.running else SupervisorState.IDLE

    @property
    def running(self) -> bool:
        return self._pool.running

    @property
    def pool(self) -> TransactionWorkerPool:
        return self._pool

    # ------------------------------------------------------------ #
    # public API
    # ------------------------------------------------------------ #
    async def bootstrap(self) -> SupervisorState:
        """起動時の 1 回だけ。永続チェックポイントは持たず、ライブカウントから復元"""
        count = await self._count()
        if count:
            self._activate(count)
        else:
            logger.info("no validators at startup (count=%s), staying idle", count)
        return self.state

    async def on_notification(self, notification: ChangeNotification) -> SupervisorState:
        op = notification.operation
        if op is OperationType.OTHER:
            return self.state

        count = await self._count()
        if count is None:
            return self.state

        if op is OperationType.INSERT and count > 0 and not self.running:
            self._activate(count)
        elif op is OperationType.DELETE and count == 0 and self.running:
            self._deactivate()
        return self.state

    async def run(self, source: ChangeSource) -> None:
        """
        validator ストリームを監視し続ける。ストリーム終了は致命的。
        購読を開いてから起動時カウントを取るので、カウント中の insert も取りこぼさない。
        """
        try:
            stream = await source.open()
            await self.bootstrap()
            async for notification in stream:
                await self.on_notification(notification)
        except SubscriptionClosedError:
            raise
        except Exception as exc:
            logger.error("validator watch for supervisor failed: %s", exc)
            raise SubscriptionClosedError("supervisor", exc) from exc
        raise SubscriptionClosedError("supervisor")

    def shutdown(self) -> None:
        if self.running:
            self._deactivate()

    # ------------------------------------------------------------ #
    # internal
    # ------------------------------------------------------------ #
    async def _count(self) -> Optional[int]:
        try:
            return await self._counter.count(self._filter)
        except Exception as exc:
            logger.warning("validator count failed, treating as no data: %s", exc)
            return None

    def _activate(self, count: int) -> None:
        if self._pool.start():
            logger.info("validators=%d, supervisor idle -> active", count)

    def _deactivate(self) -> None:
        self._pool.stop()
        logger.info("validators=0, supervisor active -> idle")
