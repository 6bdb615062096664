# D:\city_chain_project\contributor_sync\contributor_sync\mirror.py
# -*- coding: utf-8 -*-
"""
contributor_sync.mirror
-----------------------
正規化アクションを contributors 台帳へ反映する

* Admit  … 既存チェックなしで必ず insert（重複は許容）
* Retire … 未失効レコードに deactive_date を打つ（論理削除）
* 0 件マッチの Retire は warning 扱い
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable

from .data_models import Action, Admit, ContributorRecord, Ignore, MirrorResult, Retire
from .base import LedgerStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContributorMirror:
    def __init__(self, ledger: LedgerStore, clock: Clock = utc_now) -> None:
        self._ledger = ledger
        self._clock = clock

    async def apply(self, action: Action) -> MirrorResult:
        if isinstance(action, Admit):
            return await self._admit(action)
        if isinstance(action, Retire):
            return await self._retire(action)
        if isinstance(action, Ignore):
            logger.debug("ignored change (%s)", action.reason)
            return MirrorResult(action=action)
        raise TypeError(f"unknown action {action!r}")

    # ---------- internal ----------
    async def _admit(self, action: Admit) -> MirrorResult:
        record = ContributorRecord(
            peer_id=action.peer_id,
            wallet=action.wallet,
            node_type=action.node_type,
            join_date=self._clock(),
        )
        inserted_id = await self._ledger.insert(record)
        logger.info(
            "admitted %s peer_id=%r wallet=%r", action.node_type.value, action.peer_id, action.wallet
        )
        return MirrorResult(action=action, inserted_id=inserted_id, matched=1)

    async def _retire(self, action: Retire) -> MirrorResult:
        match = {
            action.key_field: action.key,
            "node_type": action.node_type.value,
            "deactive_date": None,
        }
        matched = await self._ledger.update_many(match, {"deactive_date": self._clock()})
        if matched == 0:
            logger.warning(
                "retire matched no active %s contributor (%s=%r)",
                action.node_type.value, action.key_field, action.key,
            )
        else:
            logger.info(
                "retired %d %s contributor(s) (%s=%r)",
                matched, action.node_type.value, action.key_field, action.key,
            )
        return MirrorResult(action=action, matched=matched)
