# D:\city_chain_project\contributor_sync\contributor_sync\storage\__init__.py
# -*- coding: utf-8 -*-
"""MongoDB adapters for the change sources, the contributors ledger and the validator count."""
from .mongodb import (
    MongoChangeSource,
    MongoContributorLedger,
    MongoPopulationCounter,
    create_client,
    notification_from_change,
)

__all__ = [
    "MongoChangeSource",
    "MongoContributorLedger",
    "MongoPopulationCounter",
    "create_client",
    "notification_from_change",
]
