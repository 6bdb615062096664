# D:\city_chain_project\contributor_sync\contributor_sync\multiplexer.py
# -*- coding: utf-8 -*-
"""
contributor_sync.multiplexer
============================
validator / relay 2 本の変更ストリームを同時に購読し、
1 本の fan-in キュー経由で mapper → mirror に流す。

* ソースごとに listener タスク 1 本、消費側は 1 本（ソース内の順序は保たれる）
* 通知 1 件の処理失敗はログに残して続行
* どちらかのストリームが終了 / 失敗したら、もう片方を止めて
  キューに溜まっている分を処理し切ってから SubscriptionClosedError を投げる
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, Union

from .data_models import Action, Admit, ChangeNotification, MirrorResult, NodeType, Retire
from .errors import SubscriptionClosedError, SyncError
from .mapper import map_notification
from .mirror import ContributorMirror
from .base import ChangeSource

logger = logging.getLogger(__name__)

Mapper = Callable[[NodeType, ChangeNotification], Action]


@dataclass(slots=True)
class _Closed:
    """listener 終了の合図（error が None なら end-of-stream）"""

    origin: NodeType
    error: Optional[BaseException] = None


_Item = Union[tuple[NodeType, ChangeNotification], _Closed]


@dataclass
class MultiplexerStats:
    admitted: int = 0
    retired: int = 0
    unmatched: int = 0
    ignored: int = 0
    failed: int = 0

    def record(self, result: MirrorResult) -> None:
        if isinstance(result.action, Admit):
            self.admitted += 1
        elif isinstance(result.action, Retire):
            if result.warning:
                self.unmatched += 1
            else:
                self.retired += 1
        else:
            self.ignored += 1


class StreamMultiplexer:
    """
    `await StreamMultiplexer({NodeType.VALIDATOR: v_src, NodeType.RELAY: r_src}, mirror).run()`
    で常駐させる。戻るのは例外（SubscriptionClosedError / CancelledError）のときだけ。
    """

    def __init__(
        self,
        sources: Mapping[NodeType, ChangeSource],
        mirror: ContributorMirror,
        *,
        mapper: Mapper = map_notification,
        queue_size: int = 1000,
    ) -> None:
        if not sources:
            raise ValueError("at least one change source is required")
        self._sources = dict(sources)
        self._mirror = mirror
        self._mapper = mapper
        self._queue_size = queue_size
        self.stats = MultiplexerStats()

    # ----------------------------------------------
    # 通知 1 件の処理（失敗しても上に投げない）
    # ----------------------------------------------
    async def dispatch(self, origin: NodeType, notification: ChangeNotification) -> Optional[MirrorResult]:
        try:
            action = self._mapper(origin, notification)
            result = await self._mirror.apply(action)
        except SyncError as exc:
            self.stats.failed += 1
            if exc.alert:
                logger.error("error processing %s change: %s", origin.value, exc, exc_info=exc)
            else:
                logger.warning("skipped %s change: %s", origin.value, exc)
            return None
        except Exception as exc:
            self.stats.failed += 1
            logger.exception("error processing %s change: %s", origin.value, exc)
            return None
        self.stats.record(result)
        return result

    # ----------------------------------------------
    # メインループ
    # ----------------------------------------------
    async def run(self) -> None:
        queue: asyncio.Queue[_Item] = asyncio.Queue(maxsize=self._queue_size)
        listeners = {
            origin: asyncio.create_task(self._listen(origin, source, queue), name=f"listen-{origin.value}")
            for origin, source in self._sources.items()
        }
        logger.info("watching %s", ", ".join(o.value for o in listeners))

        try:
            while True:
                item = await queue.get()
                if isinstance(item, _Closed):
                    await self._shutdown(listeners, queue)
                    raise SubscriptionClosedError(item.origin.value, item.error) from item.error
                await self.dispatch(*item)
        finally:
            for task in listeners.values():
                task.cancel()
            await asyncio.gather(*listeners.values(), return_exceptions=True)

    async def _listen(self, origin: NodeType, source: ChangeSource, queue: asyncio.Queue[_Item]) -> None:
        try:
            async for notification in source.subscribe():
                await queue.put((origin, notification))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("%s subscription failed: %s", origin.value, exc)
            await queue.put(_Closed(origin, exc))
            return
        logger.error("%s subscription ended", origin.value)
        await queue.put(_Closed(origin))

    async def _shutdown(self, listeners: Mapping[NodeType, asyncio.Task], queue: asyncio.Queue[_Item]) -> None:
        """残りの listener を止め、既にキューにある通知を処理し切る"""
        for task in listeners.values():
            task.cancel()
        await asyncio.gather(*listeners.values(), return_exceptions=True)

        drained = 0
        while not queue.empty():
            item = queue.get_nowait()
            if isinstance(item, _Closed):
                continue
            await self.dispatch(*item)
            drained += 1
        if drained:
            logger.info("drained %d buffered change(s) before shutdown", drained)
