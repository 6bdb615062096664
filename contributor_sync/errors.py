# D:\city_chain_project\contributor_sync\contributor_sync\errors.py
# -*- coding: utf-8 -*-
"""
errors.py  ― contributor_sync 共通例外
"""
from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """すべての独自例外の親。"""

    retryable: bool = False       # デフォルト: リトライ不可
    alert: bool = True            # デフォルト: error レベルで記録


# ───────────────────────────
# カテゴリ別
# ───────────────────────────
class MappingError(SyncError):
    """通知 1 件分のフィールド欠落・型不正。次の通知の処理は続行する"""

    retryable = False
    alert = False


class StorageError(SyncError):
    """
    台帳 / カウント問い合わせなど Mongo 側の失敗。
    接続系は retryable、それ以外（書き込み拒否など）は retryable=False で作る。
    """

    retryable = True

    def __init__(self, message: str, retryable: Optional[bool] = None) -> None:
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class SubscriptionClosedError(SyncError):
    """変更ストリームが終了 or 失敗した。サービスにとって致命的"""

    def __init__(self, origin: str, cause: Optional[BaseException] = None) -> None:
        self.origin = origin
        self.cause = cause
        reason = f": {cause}" if cause is not None else " (end of stream)"
        super().__init__(f"{origin} subscription closed{reason}")


class SendError(SyncError):
    """トランザクション送信失敗。そのワーカーだけが停止する（source は送信元ウォレット）"""

    def __init__(self, source: str, detail: str) -> None:
        self.source = source
        self.detail = detail
        super().__init__(f"[{source}] {detail}")
