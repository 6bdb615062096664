# D:\city_chain_project\contributor_sync\contributor_sync\app_contributor_sync.py
# -*- coding: utf-8 -*-
"""
CLI ランチャー

* `run`       … 台帳ミラー + ワークロード制御の両方
* `mirror`    … validator / relay → contributors のミラーのみ
* `supervise` … validator 数に応じたワーカー起動 / 停止のみ
* `status`    … 現在の件数を表示して終了
"""

from __future__ import annotations

import asyncio
import logging

import click

from .config import settings
from .data_models import NodeType
from .errors import SubscriptionClosedError
from .logger import configure_logging
from .service import build_service
from .storage.mongodb import MongoContributorLedger, MongoPopulationCounter, create_client

logger = logging.getLogger("contributor_sync.app")


def _serve(mirror: bool, supervise: bool) -> None:
    service = build_service(settings, mirror=mirror, supervise=supervise)
    try:
        asyncio.run(service.run())
    except SubscriptionClosedError as exc:
        logger.error("watcher stopped: %s", exc)
        raise SystemExit(1) from exc
    except KeyboardInterrupt:
        logger.info("interrupted")


@click.group()
@click.option("--log-level", default=None, help="LOG_LEVEL を上書き")
@click.option("--json-logs/--line-logs", default=None, help="LOG_JSON を上書き")
def cli(log_level: str | None, json_logs: bool | None) -> None:
    """Contributor ledger sync service controller"""
    configure_logging(
        log_level or settings.log_level,
        settings.log_json if json_logs is None else json_logs,
    )


# ------------------------------------------------------------------
# サブコマンド群
# ------------------------------------------------------------------
@cli.command()
def run() -> None:  # noqa: D401
    """Run mirror + workload supervisor"""
    _serve(mirror=True, supervise=True)


@cli.command()
def mirror() -> None:  # noqa: D401
    """Run only the contributors mirror"""
    _serve(mirror=True, supervise=False)


@cli.command()
def supervise() -> None:  # noqa: D401
    """Run only the workload supervisor"""
    _serve(mirror=False, supervise=True)


@cli.command()
def status() -> None:  # noqa: D401
    """Print validator count and active contributors"""
    async def _status() -> dict[str, int]:
        client = create_client(settings)
        try:
            validators = MongoPopulationCounter(client[settings.validator_db][settings.validator_collection])
            ledger = MongoContributorLedger(client[settings.ledger_db][settings.ledger_collection])
            return {
                "validators": await validators.count(),
                "active_validators": await ledger.count_active(NodeType.VALIDATOR),
                "active_relays": await ledger.count_active(NodeType.RELAY),
            }
        finally:
            client.close()

    counts = asyncio.run(_status())
    for name, value in counts.items():
        click.echo(f"{name:<18} {value}")
    click.echo(f"{'worker_specs':<18} {len(settings.worker_specs)}")


if __name__ == "__main__":
    cli()
