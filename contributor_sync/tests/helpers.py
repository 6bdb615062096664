# D:\city_chain_project\contributor_sync\contributor_sync\tests\helpers.py
# -*- coding: utf-8 -*-
"""
テスト用のインメモリ実装（Mongo / HTTP を使わない）
"""
from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

from contributor_sync.base import ChangeSource, LedgerStore, PopulationCounter, TransactionSender
from contributor_sync.data_models import ChangeNotification, ContributorRecord, OperationType, WorkerSpec


# ---------------------------------------------------------------------------
# 通知ビルダー
# ---------------------------------------------------------------------------
def insert(key: Any = None, **document: Any) -> ChangeNotification:
    doc = dict(document)
    if key is not None:
        doc["_id"] = key
    return ChangeNotification(
        operation=OperationType.INSERT,
        key=key,
        key_fields={"_id": key} if key is not None else {},
        document=doc,
        raw_operation="insert",
    )


def delete(key: Any = None, key_fields: Optional[dict] = None, document: Optional[dict] = None) -> ChangeNotification:
    fields = dict(key_fields or {})
    if key is not None:
        fields.setdefault("_id", key)
    return ChangeNotification(
        operation=OperationType.DELETE,
        key=key,
        key_fields=fields,
        document=document,
        raw_operation="delete",
    )


def update(key: Any) -> ChangeNotification:
    return ChangeNotification(
        operation=OperationType.OTHER,
        key=key,
        key_fields={"_id": key},
        document={"_id": key},
        raw_operation="update",
    )


def spec(name: str, cadence: float = 0.0) -> WorkerSpec:
    return WorkerSpec(
        name=name,
        source_identity=f"wallet-{name}",
        signing_credential=f"secret-{name}",
        destination_identity=f"dest-{name}",
        cadence=cadence,
    )


# ---------------------------------------------------------------------------
# フェイク
# ---------------------------------------------------------------------------
class FakeLedger(LedgerStore):
    def __init__(self) -> None:
        self.docs: list[dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None

    async def insert(self, record: ContributorRecord) -> Any:
        if self.fail_with is not None:
            raise self.fail_with
        doc = record.to_document()
        doc["_id"] = len(self.docs) + 1
        self.docs.append(doc)
        return doc["_id"]

    async def update_many(self, match: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        if self.fail_with is not None:
            raise self.fail_with
        n = 0
        for doc in self.docs:
            if all(doc.get(k) == v for k, v in match.items()):
                doc.update(values)
                n += 1
        return n

    def active(self, **match: Any) -> list[dict[str, Any]]:
        return [
            d for d in self.docs
            if d["deactive_date"] is None and all(d.get(k) == v for k, v in match.items())
        ]


class FakeCounter(PopulationCounter):
    def __init__(self, value: int = 0) -> None:
        self.value = value
        self.error: Optional[Exception] = None
        self.calls = 0

    async def count(self, filter_: Mapping[str, Any] | None = None) -> int:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.value


class QueueSource(ChangeSource):
    """push() した順に通知を流す。None で end-of-stream、例外インスタンスで失敗"""

    def __init__(self) -> None:
        self._q: asyncio.Queue[Any] = asyncio.Queue()

    def push(self, *items: Any) -> None:
        for item in items:
            self._q.put_nowait(item)

    async def subscribe(self):
        while True:
            item = await self._q.get()
            if item is None:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class LiveSource(ChangeSource):
    """
    実際の change stream と同じく、open() 前に emit() された変更は届かない。
    emit(None) で end-of-stream。
    """

    def __init__(self) -> None:
        self._q: Optional[asyncio.Queue[Any]] = None
        self.dropped = 0

    def emit(self, item: Any) -> None:
        if self._q is None:
            self.dropped += 1
            return
        self._q.put_nowait(item)

    async def open(self):
        self._q = asyncio.Queue()
        return self._iterate(self._q)

    async def subscribe(self):
        async for item in await self.open():
            yield item

    @staticmethod
    async def _iterate(q: asyncio.Queue[Any]):
        while True:
            item = await q.get()
            if item is None:
                return
            yield item


class RecordingSender(TransactionSender):
    """
    send() 呼び出しを記録する。
    * fail_for   … この source_identity なら例外
    * gate       … セットされるまで送信中のまま止まる
    """

    def __init__(self, fail_for: tuple[str, ...] = (), gate: Optional[asyncio.Event] = None) -> None:
        self.calls: list[tuple[str, str, str, str]] = []
        self.fail_for = set(fail_for)
        self.gate = gate
        self.completed = 0

    async def send(self, source_identity: str, signing_credential: str, destination_identity: str, value: str) -> Any:
        self.calls.append((source_identity, signing_credential, destination_identity, value))
        if source_identity in self.fail_for:
            raise RuntimeError(f"rejected {source_identity}")
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        self.completed += 1
        return {"tx": len(self.calls)}


async def eventually(cond: Callable[[], bool], timeout: float = 2.0) -> None:
    """cond() が True になるまでイベントループを回す"""
    deadline = time.monotonic() + timeout
    while not cond():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class FixedClock:
    def __init__(self) -> None:
        self._now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        self._step = timedelta(seconds=1)

    def __call__(self) -> datetime:
        self._now = self._now + self._step
        return self._now
