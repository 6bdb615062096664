# D:\city_chain_project\contributor_sync\contributor_sync\base.py
# -*- coding: utf-8 -*-
"""
共通インターフェース（外部コラボレータとの境界）

* Mongo 実装   … storage/mongodb.py
* HTTP 送信実装 … sender.py
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Mapping

from .data_models import ChangeNotification, ContributorRecord


class ChangeSource(ABC):
    """1 コレクション分の変更通知フィード"""

    @abstractmethod
    def subscribe(self) -> AsyncIterator[ChangeNotification]:
        """終了 / 例外はどちらも購読の終わり（呼び出し側で致命扱い）"""

    async def open(self) -> AsyncIterator[ChangeNotification]:
        """
        購読を確立してからイテレータを返す。
        戻った時点以降の変更は必ず届く。サーバ側カーソルを持つ実装は上書きすること。
        """
        return self.subscribe()


class LedgerStore(ABC):
    @abstractmethod
    async def insert(self, record: ContributorRecord) -> Any:
        """挿入した _id を返す"""

    @abstractmethod
    async def update_many(self, match: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        """更新件数を返す"""


class PopulationCounter(ABC):
    @abstractmethod
    async def count(self, filter_: Mapping[str, Any] | None = None) -> int: ...


class TransactionSender(ABC):
    @abstractmethod
    async def send(
        self,
        source_identity: str,
        signing_credential: str,
        destination_identity: str,
        value: str,
    ) -> Any:
        """失敗は例外で返す（ワーカーはそこで止まる）"""
