# D:\city_chain_project\contributor_sync\contributor_sync\worker_pool.py
# -*- coding: utf-8 -*-
"""
contributor_sync.worker_pool
----------------------------
トランザクション送信ワーカーのプール

* WorkerSpec 1 つにつき無限ループ 1 本
* 送信成功 → cadence 秒待って次へ / 失敗 → ログを出してそのワーカーだけ終了
* stop() はキャンセルを投げるだけで待たない（送信中のものは後から着地しうる）
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Callable, List, Sequence, Set

from .data_models import WorkerSpec
from .base import TransactionSender

logger = logging.getLogger(__name__)


def random_value() -> str:
    """0〜1 の乱数を小数 12 桁の文字列で"""
    return f"{random.random():.12f}"


class TransactionWorkerPool:
    def __init__(
        self,
        specs: Sequence[WorkerSpec],
        sender: TransactionSender,
        value_factory: Callable[[], str] = random_value,
    ) -> None:
        self._specs: List[WorkerSpec] = [
            spec if spec.name else spec.model_copy(update={"name": f"tx-{i + 1}"})
            for i, spec in enumerate(specs)
        ]
        self._sender = sender
        self._value_factory = value_factory
        self._handles: Set[asyncio.Task] = set()

    # ------------------------------------------------------------ #
    # 状態
    # ------------------------------------------------------------ #
    @property
    def specs(self) -> List[WorkerSpec]:
        return list(self._specs)

    @property
    def handles(self) -> Set[asyncio.Task]:
        return set(self._handles)

    @property
    def running(self) -> bool:
        return bool(self._handles)

    def alive(self) -> int:
        """まだループ中のワーカー数（失敗で抜けたものは数えない）"""
        return sum(1 for t in self._handles if not t.done())

    # ------------------------------------------------------------ #
    # ライフサイクル
    # ------------------------------------------------------------ #
    def start(self) -> bool:
        """全ワーカーを並列起動。既にバッチが動いていれば何もしない"""
        if self._handles:
            return False
        if not self._specs:
            logger.warning("no worker specs configured, nothing to start")
            return False
        for spec in self._specs:
            task = asyncio.create_task(self._run_worker(spec), name=spec.name)
            self._handles.add(task)
        logger.info("transaction batch started with %d worker(s)", len(self._handles))
        return True

    def stop(self) -> int:
        """全ワーカーをキャンセル（join しない）。キャンセルを投げた数を返す"""
        handles, self._handles = self._handles, set()
        cancelled = 0
        for task in handles:
            if task.cancel():
                cancelled += 1
        if handles:
            logger.info("transaction batch stopped (%d cancelled)", cancelled)
        return cancelled

    # ------------------------------------------------------------ #
    # ワーカーループ
    # ------------------------------------------------------------ #
    async def _run_worker(self, spec: WorkerSpec) -> None:
        logger.info("Starting transaction worker %s", spec.name)
        credential = spec.signing_credential.get_secret_value()
        while True:
            value = self._value_factory()
            try:
                await self._sender.send(
                    spec.source_identity,
                    credential,
                    spec.destination_identity,
                    value,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Error in transaction %s: %s", spec.name, exc)
                return
            await asyncio.sleep(spec.cadence)
