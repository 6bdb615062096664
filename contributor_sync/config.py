# D:\city_chain_project\contributor_sync\contributor_sync\config.py
# -*- coding: utf-8 -*-
"""
contributor_sync ― アプリケーション設定

* .env  または OS 環境変数から読み込む
* すべてデフォルト値付きなので、未設定でもローカル環境で起動可能
* WORKER_SPECS は JSON 配列で渡す
    例: [{"name": "tx-1", "source_identity": "5FAG...", "signing_credential": "belt ...",
          "destination_identity": "5Fo2...", "cadence": 1}]
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .data_models import WorkerSpec


class Settings(BaseSettings):
    # ---------------------------------------------------------------------
    # MongoDB 接続
    # ---------------------------------------------------------------------
    mongodb_url: str = Field(
        "mongodb://localhost:27017",
        alias="MONGODB_URL",
        description="MongoDB URI（change stream を使うので replica set 必須）",
    )
    server_selection_timeout_ms: int = Field(
        5_000,
        alias="MONGO_SST_MS",
        description="serverSelectionTimeoutMS",
    )

    # ---------------------------------------------------------------------
    # ソース 2 本 + ターゲット台帳
    # ---------------------------------------------------------------------
    validator_db: str = Field("Centichain", alias="VALIDATOR_DB")
    validator_collection: str = Field("validators", alias="VALIDATOR_COLLECTION")
    relay_db: str = Field("centiweb", alias="RELAY_DB")
    relay_collection: str = Field("relays", alias="RELAY_COLLECTION")
    ledger_db: str = Field("centiweb", alias="LEDGER_DB")
    ledger_collection: str = Field("contributors", alias="LEDGER_COLLECTION")

    lookup_on_delete: bool = Field(
        False,
        alias="LOOKUP_ON_DELETE",
        description="delete 通知に pre-image を付ける（MongoDB 6+ / changeStreamPreAndPostImages 必須）",
    )
    write_retries: int = Field(
        3,
        alias="WRITE_RETRIES",
        ge=1,
        description="台帳書き込みの最大試行回数",
    )
    queue_size: int = Field(
        1000,
        alias="SYNC_QUEUE_SIZE",
        ge=1,
        description="2 ソースを束ねる fan-in キューの上限",
    )

    # ---------------------------------------------------------------------
    # トランザクションワーカー
    # ---------------------------------------------------------------------
    worker_specs: list[WorkerSpec] = Field(
        default_factory=list,
        alias="WORKER_SPECS",
        description="ワーカープールの構成（JSON 配列）",
    )
    tx_endpoint: str = Field(
        "http://localhost:33369/trx",
        alias="TX_ENDPOINT",
        description="署名・送信を受け持つウォレットゲートウェイ",
    )
    tx_timeout: float = Field(5.0, alias="TX_TIMEOUT")

    # ---------------------------------------------------------------------
    # ログ
    # ---------------------------------------------------------------------
    log_level: str = Field(
        "INFO",
        alias="LOG_LEVEL",
        description="ログレベル（DEBUG / INFO / WARNING / ERROR）",
    )
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config: SettingsConfigDict = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )


# ------------------------------------------------------------
# シングルトン
# ------------------------------------------------------------
settings = Settings()
