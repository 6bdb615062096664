# D:\city_chain_project\contributor_sync\contributor_sync\sender.py
# -*- coding: utf-8 -*-
"""
contributor_sync.sender
-----------------------
「トランザクションを 1 件送る」外部操作の HTTP 実装。
署名とネットワーク送信はウォレットゲートウェイ側が受け持つ。
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from .base import TransactionSender
from .errors import SendError

logger = logging.getLogger(__name__)


class HttpTransactionSender(TransactionSender):
    """
    POST {endpoint}  json={"wallet", "private_key", "recipient", "value"}
    2xx 以外 / 通信失敗は SendError
    """

    def __init__(self, endpoint: str, timeout: float = 5.0) -> None:
        self._endpoint = endpoint
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._sess: Optional[aiohttp.ClientSession] = None

    async def send(
        self,
        source_identity: str,
        signing_credential: str,
        destination_identity: str,
        value: str,
    ) -> Any:
        if self._sess is None or self._sess.closed:
            self._sess = aiohttp.ClientSession(timeout=self._timeout)

        payload = {
            "wallet": source_identity,
            "private_key": signing_credential,
            "recipient": destination_identity,
            "value": value,
        }
        try:
            async with self._sess.post(self._endpoint, json=payload) as resp:
                if resp.status >= 300:
                    body = await resp.text()
                    raise SendError(source_identity, f"HTTP {resp.status}: {body[:200]}")
                receipt = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise SendError(source_identity, str(exc)) from exc
        logger.debug("sent %s -> %s value=%s", source_identity, destination_identity, value)
        return receipt

    async def close(self) -> None:
        if self._sess is not None:
            await self._sess.close()
            self._sess = None
