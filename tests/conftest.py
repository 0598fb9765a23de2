from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping

import pytest
from prometheus_client import CollectorRegistry

from voucher_allocation.allocation import (
    AllocatorPolicy,
    ExpirationSweeper,
    VerificationOutcome,
    VoucherAllocator,
    sqlalchemy_uow_factory,
)
from voucher_allocation.infrastructure.monitoring.metrics import build_allocation_metrics
from voucher_allocation.infrastructure.persistence import (
    VoucherModel,
    create_schema,
    make_engine,
    make_session_factory,
)

ACCOUNT_A = "0x" + "a" * 40
ACCOUNT_B = "0x" + "b" * 40
ACCOUNT_C = "0x" + "c" * 40
BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self._wall = start or BASE_TIME
        self._mono = 0.0
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._wall

    def monotonic(self) -> float:
        with self._lock:
            return self._mono

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._wall += timedelta(seconds=seconds)
            self._mono += seconds


class StubVerifier:
    """Returns scripted verdicts per voucher id; defaults to not redeemed."""

    def __init__(self, verdicts: Mapping[str, VerificationOutcome] | None = None) -> None:
        self.verdicts = dict(verdicts or {})
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def check(self, voucher_id: str) -> VerificationOutcome:
        with self._lock:
            self.calls.append(voucher_id)
        return self.verdicts.get(voucher_id, VerificationOutcome.NOT_REDEEMED)


def seed_vouchers(session_factory, voucher_ids: Iterable[str], **overrides) -> None:
    """Insert available vouchers one second apart so FIFO order is deterministic."""

    with session_factory() as session:
        for offset, voucher_id in enumerate(voucher_ids):
            values = {
                "voucher_id": voucher_id,
                "status": "available",
                "is_redeemed": False,
                "created_at": BASE_TIME - timedelta(days=1) + timedelta(seconds=offset),
            }
            values.update(overrides)
            session.add(VoucherModel(**values))
        session.commit()


def load_voucher(session_factory, voucher_id: str) -> VoucherModel | None:
    with session_factory() as session:
        return session.get(VoucherModel, voucher_id)


@pytest.fixture()
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'vouchers.db'}")
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def verifier() -> StubVerifier:
    return StubVerifier()


@pytest.fixture()
def metrics():
    return build_allocation_metrics(CollectorRegistry())


@pytest.fixture()
def build_allocator(session_factory, clock, verifier, metrics):
    def _build(*, verifier_override=None, policy: AllocatorPolicy | None = None, sweeper=None) -> VoucherAllocator:
        uow_factory = sqlalchemy_uow_factory(session_factory)
        return VoucherAllocator(
            uow_factory=uow_factory,
            verifier=verifier_override or verifier,
            clock=clock,
            policy=policy,
            sweeper=sweeper or ExpirationSweeper(uow_factory=uow_factory, clock=clock, metrics=metrics),
            metrics=metrics,
        )

    return _build
