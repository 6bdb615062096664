# D:\city_chain_project\contributor_sync\contributor_sync\mapper.py
# -*- coding: utf-8 -*-
"""
contributor_sync.mapper
-----------------------
生の変更通知 + 発生元 → 台帳アクション（Admit / Retire / Ignore）

副作用なしの純関数だけを置く。ID の取り出し順は下の
フォールバックチェーンに明示しておく。
"""
from __future__ import annotations

from typing import Any, Callable, Optional

from .data_models import (
    Action,
    Admit,
    ChangeNotification,
    Ignore,
    NodeType,
    OperationType,
    Retire,
)
from .errors import MappingError

__all__ = ["PEER_ID_FIELDS", "map_notification", "resolve_peer_id", "resolve_retire_key"]

# 発生元ごとの「ドキュメント内 peer id フィールド名」
PEER_ID_FIELDS: dict[NodeType, str] = {
    NodeType.VALIDATOR: "peerid",
    NodeType.RELAY: "addr",
}

Extractor = Callable[[NodeType, ChangeNotification], Optional[str]]


def _as_str(value: Any, what: str) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        raise MappingError(f"{what} is not a scalar: {value!r}")
    return str(value)


def _from_key(origin: NodeType, n: ChangeNotification) -> Optional[str]:
    return _as_str(n.key, "document key")


def _from_document(origin: NodeType, n: ChangeNotification) -> Optional[str]:
    if not n.document:
        return None
    field = PEER_ID_FIELDS[origin]
    value = n.document.get(field)
    if value is not None and not isinstance(value, str):
        raise MappingError(f"{origin.value}.{field} must be a string, got {type(value).__name__}")
    return value


def _wallet(value: Any, where: str) -> Optional[str]:
    """wallet は insert / delete 共通で「文字列のみ」。数値などは変換せずエラー"""
    if value is None:
        return None
    if not isinstance(value, str):
        raise MappingError(f"{where} must be a string, got {type(value).__name__}")
    return value


def _wallet_from_key_fields(origin: NodeType, n: ChangeNotification) -> Optional[str]:
    return _wallet(n.key_fields.get("wallet"), "documentKey.wallet")


def _wallet_from_document(origin: NodeType, n: ChangeNotification) -> Optional[str]:
    if not n.document:
        return None
    return _wallet(n.document.get("wallet"), "wallet")


# ───────────────────────────
# フォールバックチェーン（先頭から順に試す）
# ───────────────────────────
PEER_ID_CHAIN: tuple[Extractor, ...] = (_from_key, _from_document)

RETIRE_CHAIN: tuple[tuple[str, Extractor], ...] = (
    ("peer_id", _from_key),
    ("wallet", _wallet_from_key_fields),
    ("wallet", _wallet_from_document),
)


def resolve_peer_id(origin: NodeType, n: ChangeNotification) -> str:
    """見つからなければ空文字（エラーではない）"""
    for extract in PEER_ID_CHAIN:
        value = extract(origin, n)
        if value is not None:
            return value
    return ""


def resolve_retire_key(origin: NodeType, n: ChangeNotification) -> tuple[str, str]:
    for key_field, extract in RETIRE_CHAIN:
        value = extract(origin, n)
        if value is not None:
            return key_field, value
    raise MappingError(f"{origin.value} delete carries neither document key nor wallet")


def _wallet_of(document: dict[str, Any]) -> str:
    return _wallet(document.get("wallet"), "wallet") or ""


def map_notification(origin: NodeType, notification: ChangeNotification) -> Action:
    op = notification.operation

    if op is OperationType.INSERT:
        if notification.document is None:
            raise MappingError(f"{origin.value} insert without full document (key={notification.key!r})")
        return Admit(
            peer_id=resolve_peer_id(origin, notification),
            wallet=_wallet_of(notification.document),
            node_type=origin,
        )

    if op is OperationType.DELETE:
        key_field, key = resolve_retire_key(origin, notification)
        return Retire(key=key, node_type=origin, key_field=key_field)

    return Ignore(reason=notification.raw_operation or op.value)
