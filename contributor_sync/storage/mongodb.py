# D:\city_chain_project\contributor_sync\contributor_sync\storage\mongodb.py
# -*- coding: utf-8 -*-
"""
非同期 MongoDB アダプタ（Motor）

* motor>=3 / pymongo>=4
* MongoChangeSource      … collection.watch() → ChangeNotification
* MongoContributorLedger … contributors 台帳への insert / update_many
* MongoPopulationCounter … count_documents
* 変更ストリームを使うので接続先は replica set であること
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional, TypeVar

import motor.motor_asyncio
from motor.core import AgnosticCollection
from pymongo.errors import ConnectionFailure, PyMongoError

from ..base import ChangeSource, LedgerStore, PopulationCounter
from ..config import Settings
from ..data_models import ChangeNotification, ContributorRecord, NodeType, OperationType
from ..errors import StorageError

__all__ = [
    "MongoChangeSource",
    "MongoContributorLedger",
    "MongoPopulationCounter",
    "create_client",
    "notification_from_change",
]

_LOG = logging.getLogger(__name__)

T = TypeVar("T")


def create_client(cfg: Settings) -> motor.motor_asyncio.AsyncIOMotorClient:
    return motor.motor_asyncio.AsyncIOMotorClient(
        cfg.mongodb_url,
        tz_aware=True,
        serverSelectionTimeoutMS=cfg.server_selection_timeout_ms,
    )


# ---------------------------------------------------------------------------- #
# change stream
# ---------------------------------------------------------------------------- #
def notification_from_change(change: Mapping[str, Any]) -> ChangeNotification:
    """生の change event ドキュメント → ChangeNotification"""
    raw_op = change.get("operationType") or ""
    op = OperationType.from_raw(raw_op)
    key_fields = dict(change.get("documentKey") or {})

    if op is OperationType.DELETE:
        document = change.get("fullDocumentBeforeChange")
    else:
        document = change.get("fullDocument")

    return ChangeNotification(
        operation=op,
        key=key_fields.get("_id"),
        key_fields=key_fields,
        document=dict(document) if document is not None else None,
        raw_operation=raw_op,
    )


class MongoChangeSource(ChangeSource):
    """
    1 コレクション分の変更ストリーム。
    resume token は保存しない（再起動時は現在位置から見直す）。
    """

    def __init__(self, collection: AgnosticCollection, lookup_on_delete: bool = False) -> None:
        self._col = collection
        self._lookup_on_delete = lookup_on_delete

    @property
    def name(self) -> str:
        return self._col.full_name

    def watch_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"full_document": "updateLookup"}
        if self._lookup_on_delete:
            options["full_document_before_change"] = "whenAvailable"
        return options

    async def open(self) -> AsyncIterator[ChangeNotification]:
        """
        watch() は最初の next / try_next まで aggregate を投げないので、
        try_next() を 1 回呼んでサーバ側カーソルを確定させてから返す。
        """
        stream = self._col.watch(**self.watch_options())
        try:
            first = await stream.try_next()
        except BaseException:
            await stream.close()
            raise
        _LOG.info("watching %s", self.name)
        return self._iterate(stream, first)

    async def subscribe(self) -> AsyncIterator[ChangeNotification]:
        async for notification in await self.open():
            yield notification

    @staticmethod
    async def _iterate(stream: Any, first: Optional[Mapping[str, Any]]) -> AsyncIterator[ChangeNotification]:
        try:
            if first is not None:
                yield notification_from_change(first)
            async for change in stream:
                yield notification_from_change(change)
        finally:
            await stream.close()


# ---------------------------------------------------------------------------- #
# 台帳
# ---------------------------------------------------------------------------- #
def _storage_error(what: str, exc: PyMongoError) -> StorageError:
    """接続系（ConnectionFailure / タイムアウト）だけ retryable"""
    return StorageError(f"{what} failed: {exc}", retryable=isinstance(exc, ConnectionFailure))


class MongoContributorLedger(LedgerStore):
    """
    * insert()        …… 1件挿入
    * update_many()   …… 論理削除
    * count_active()  …… node_type ごとの有効レコード数

    書き込みは retryable な StorageError のときだけ線形バックオフで再試行
    （backoff, 2*backoff, ... 秒、合計 max_retry 回まで）。
    """

    def __init__(self, collection: AgnosticCollection, max_retry: int = 3, backoff: float = 0.05) -> None:
        self._col = collection
        self._max_retry = max(1, max_retry)
        self._backoff = backoff

    async def _with_retry(self, what: str, op: Callable[[], Awaitable[T]]) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await op()
            except PyMongoError as exc:
                err = _storage_error(what, exc)
                if not err.retryable or attempt >= self._max_retry:
                    raise err from exc
                _LOG.warning("%s attempt %d/%d failed: %s", what, attempt, self._max_retry, exc)
                await asyncio.sleep(self._backoff * attempt)

    async def insert(self, record: ContributorRecord) -> Any:
        doc = record.to_document()

        async def _op() -> Any:
            res = await self._col.insert_one(dict(doc))
            return res.inserted_id

        return await self._with_retry(f"insert into {self._col.name}", _op)

    async def update_many(self, match: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        async def _op() -> int:
            res = await self._col.update_many(dict(match), {"$set": dict(values)})
            return int(res.modified_count)

        return await self._with_retry(f"update on {self._col.name}", _op)

    async def count_active(self, node_type: NodeType) -> int:
        return await self._col.count_documents({"node_type": node_type.value, "deactive_date": None})

    async def ensure_indexes(self) -> None:
        try:
            await self._col.create_index(
                [("peer_id", 1), ("node_type", 1), ("deactive_date", 1)], name="peer_active"
            )
            await self._col.create_index([("wallet", 1), ("node_type", 1)], name="wallet_type")
        except PyMongoError as exc:
            _LOG.warning("index creation on %s failed: %s", self._col.name, exc)


class MongoPopulationCounter(PopulationCounter):
    def __init__(self, collection: AgnosticCollection) -> None:
        self._col = collection

    async def count(self, filter_: Mapping[str, Any] | None = None) -> int:
        return await self._col.count_documents(dict(filter_ or {}))
