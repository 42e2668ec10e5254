from __future__ import annotations

from decimal import Decimal

import pytest

from occ_transfer.database import Database
from occ_transfer.scenarios.optimistic import OptimisticTransferService
from occ_transfer.scenarios.retry import RetryPolicy

from .fakes import FakeLedger


@pytest.fixture()
def ledger() -> FakeLedger:
    return FakeLedger({"A": Decimal("100.00"), "B": Decimal("50.00")})


@pytest.fixture()
def held_intervals() -> list[tuple[float, float]]:
    return []


@pytest.fixture()
def db(ledger: FakeLedger, held_intervals: list[tuple[float, float]]) -> Database:
    return Database(
        "postgresql://unused",
        connect=ledger.connect,
        on_release=lambda acquired, released: held_intervals.append((acquired, released)),
    )


@pytest.fixture()
def service(db: Database) -> OptimisticTransferService:
    return OptimisticTransferService(db, policy=RetryPolicy())
