# D:\city_chain_project\contributor_sync\contributor_sync\data_models.py
# -*- coding: utf-8 -*-
"""
contributor_sync.data_models
----------------------------
変更通知 / 台帳レコード / ワーカー設定 / 正規化アクションの型定義
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class NodeType(str, Enum):
    VALIDATOR = "validator"
    RELAY = "relay"


class OperationType(str, Enum):
    INSERT = "insert"
    DELETE = "delete"
    OTHER = "other"

    @classmethod
    def from_raw(cls, name: str | None) -> "OperationType":
        """MongoDB の operationType 文字列 → 3 値に丸める"""
        if name == "insert":
            return cls.INSERT
        if name == "delete":
            return cls.DELETE
        return cls.OTHER


class SupervisorState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


# ---------------------------------------------------------------------------
# 入力: 変更通知
# ---------------------------------------------------------------------------
class ChangeNotification(BaseModel):
    """
    ソース 1 本分の変更通知。

    * key         … documentKey._id（ソース側の安定 ID）
    * key_fields  … documentKey 全体（シャードキー wallet 等を含むことがある）
    * document    … insert なら post-image、delete なら pre-image（取れた場合のみ）
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    operation: OperationType
    key: Any = None
    key_fields: dict[str, Any] = Field(default_factory=dict)
    document: Optional[dict[str, Any]] = None
    raw_operation: str = ""


# ---------------------------------------------------------------------------
# 出力: 台帳レコード
# ---------------------------------------------------------------------------
class ContributorRecord(BaseModel):
    peer_id: str = ""
    wallet: str = ""
    node_type: NodeType
    join_date: datetime
    deactive_date: Optional[datetime] = None

    @property
    def active(self) -> bool:
        return self.deactive_date is None

    def to_document(self) -> dict[str, Any]:
        doc = self.model_dump()
        doc["node_type"] = self.node_type.value
        return doc


class WorkerSpec(BaseModel):
    """プール 1 メンバー分の静的設定（プール生存中は不変）"""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    source_identity: str
    signing_credential: SecretStr
    destination_identity: str
    cadence: float = Field(1.0, ge=0.0, description="送信成功後の待ち秒数")


# ---------------------------------------------------------------------------
# 正規化アクション
# ---------------------------------------------------------------------------
@dataclass(slots=True, frozen=True)
class Admit:
    peer_id: str
    wallet: str
    node_type: NodeType


@dataclass(slots=True, frozen=True)
class Retire:
    key: str
    node_type: NodeType
    key_field: str = "peer_id"   # "peer_id" or "wallet"


@dataclass(slots=True, frozen=True)
class Ignore:
    reason: str = ""


Action = Union[Admit, Retire, Ignore]


@dataclass(slots=True)
class MirrorResult:
    action: Action
    inserted_id: Any = None
    matched: int = 0

    @property
    def warning(self) -> bool:
        """Retire が 1 件もマッチしなかった（未ミラーの ID など）"""
        return isinstance(self.action, Retire) and self.matched == 0
