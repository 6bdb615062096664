# D:\city_chain_project\contributor_sync\contributor_sync\tests\conftest.py
# -*- coding: utf-8 -*-
from __future__ import annotations

import pytest

from contributor_sync.mirror import ContributorMirror

from .helpers import FakeCounter, FakeLedger, FixedClock, QueueSource


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def mirror(ledger: FakeLedger, clock: FixedClock) -> ContributorMirror:
    return ContributorMirror(ledger, clock=clock)


@pytest.fixture
def counter() -> FakeCounter:
    return FakeCounter()


@pytest.fixture
def validator_source() -> QueueSource:
    return QueueSource()


@pytest.fixture
def relay_source() -> QueueSource:
    return QueueSource()
