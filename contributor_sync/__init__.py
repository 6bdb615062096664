# D:\city_chain_project\contributor_sync\contributor_sync\__init__.py
# -*- coding: utf-8 -*-
"""
contributor_sync

validator / relay コレクションの変更ストリームを contributors 台帳へミラーし、
validator 数に応じてトランザクションワーカーを起動 / 停止するサービス。
"""
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("contributor_sync")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    "ContributorMirror",
    "StreamMultiplexer",
    "TransactionWorkerPool",
    "WorkloadSupervisor",
    "map_notification",
    "__version__",
]


def __getattr__(name):
    if name == "ContributorMirror":
        from .mirror import ContributorMirror
        return ContributorMirror
    if name == "StreamMultiplexer":
        from .multiplexer import StreamMultiplexer
        return StreamMultiplexer
    if name == "TransactionWorkerPool":
        from .worker_pool import TransactionWorkerPool
        return TransactionWorkerPool
    if name == "WorkloadSupervisor":
        from .supervisor import WorkloadSupervisor
        return WorkloadSupervisor
    if name == "map_notification":
        from .mapper import map_notification
        return map_notification
    raise AttributeError(name)
