# D:\city_chain_project\contributor_sync\contributor_sync\logger.py
# -*- coding: utf-8 -*-
"""
logger.py  ― プロセス共通のログ設定
行形式 or JSON 形式で stdout に流すだけ。
"""
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Mapping

_LOGGER_NAME = "contributor_sync"
_LINE_FORMAT = "[%(asctime)s] %(levelname)s %(name)s %(message)s"


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        exc = self.formatException(record.exc_info) if record.exc_info else None
        data: Mapping[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "lvl": record.levelname,
            "msg": record.getMessage(),
            "exc": exc,
            "module": record.module,
        }
        return json.dumps(data, ensure_ascii=False)


def configure_logging(level: str = "INFO", json_format: bool = False) -> logging.Logger:
    """
    `contributor_sync` 配下のロガーに stdout ハンドラを 1 本だけ付ける。
    何度呼んでもハンドラは増えない。
    """
    root = logging.getLogger(_LOGGER_NAME)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter() if json_format else logging.Formatter(_LINE_FORMAT))

    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root.propagate = False  # 二重出力防止
    return root
