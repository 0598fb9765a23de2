from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from voucher_allocation.allocation import UnitOfWorkError, VoucherUnitOfWork
from voucher_allocation.infrastructure.persistence import VoucherModel

from tests.conftest import ACCOUNT_A, ACCOUNT_B, BASE_TIME, load_voucher, seed_vouchers

EXPIRES = BASE_TIME + timedelta(hours=24)


def test_next_available_is_fifo_and_honours_exclusions(session_factory) -> None:
    seed_vouchers(session_factory, ["z-older", "b-newer"])
    with VoucherUnitOfWork(session_factory) as uow:
        repo = uow.vouchers
        assert repo.next_available().voucher_id == "z-older"
        assert repo.next_available(exclude={"z-older"}).voucher_id == "b-newer"
        assert repo.next_available(exclude={"z-older", "b-newer"}) is None


def test_claim_is_conditional(session_factory) -> None:
    seed_vouchers(session_factory, ["v1"])
    with VoucherUnitOfWork(session_factory) as uow:
        assert uow.vouchers.claim("v1", account=ACCOUNT_A, now=BASE_TIME, expires_at=EXPIRES)
    with VoucherUnitOfWork(session_factory) as uow:
        assert not uow.vouchers.claim("v1", account=ACCOUNT_B, now=BASE_TIME, expires_at=EXPIRES)
        assert not uow.vouchers.claim("missing", account=ACCOUNT_B, now=BASE_TIME, expires_at=EXPIRES)

    row = load_voucher(session_factory, "v1")
    assert row.owner_account == ACCOUNT_A
    assert row.status == "assigned"


def test_one_active_voucher_per_account(session_factory) -> None:
    seed_vouchers(session_factory, ["v1", "v2"])
    with VoucherUnitOfWork(session_factory) as uow:
        uow.vouchers.claim("v1", account=ACCOUNT_A, now=BASE_TIME, expires_at=EXPIRES)

    with pytest.raises(IntegrityError):
        with VoucherUnitOfWork(session_factory) as uow:
            uow.vouchers.claim("v2", account=ACCOUNT_A, now=BASE_TIME, expires_at=EXPIRES)

    assert load_voucher(session_factory, "v2").status == "available"


def test_available_rows_cannot_carry_an_owner(session_factory) -> None:
    with pytest.raises(UnitOfWorkError) as exc:
        with VoucherUnitOfWork(session_factory) as uow:
            uow.session.add(VoucherModel(voucher_id="bad", status="available", owner_account=ACCOUNT_A))

    assert isinstance(exc.value.__cause__, IntegrityError)
    assert load_voucher(session_factory, "bad") is None


def test_delete_consumed_spares_verified_rows(session_factory) -> None:
    seed_vouchers(session_factory, ["open"])
    seed_vouchers(
        session_factory,
        ["kept"],
        status="verified",
        owner_account=ACCOUNT_A,
        is_redeemed=True,
        assigned_at=BASE_TIME,
        expires_at=EXPIRES,
        verified_at=BASE_TIME,
    )
    with VoucherUnitOfWork(session_factory) as uow:
        repo = uow.vouchers
        assert repo.delete_consumed("open") == 1
        assert repo.delete_consumed("kept") == 0
        assert repo.delete_consumed("open") == 0

    assert load_voucher(session_factory, "open") is None
    assert load_voucher(session_factory, "kept") is not None


def test_find_active_ignores_available_rows(session_factory) -> None:
    seed_vouchers(session_factory, ["v1"])
    with VoucherUnitOfWork(session_factory) as uow:
        repo = uow.vouchers
        assert repo.find_active_for_account(ACCOUNT_A) is None
        repo.claim("v1", account=ACCOUNT_A, now=BASE_TIME, expires_at=EXPIRES)
    with VoucherUnitOfWork(session_factory) as uow:
        assert uow.vouchers.find_active_for_account(ACCOUNT_A).voucher_id == "v1"


def test_analytics_counts_by_status(session_factory) -> None:
    seed_vouchers(session_factory, ["a1", "a2"])
    seed_vouchers(
        session_factory,
        ["x1"],
        status="assigned",
        owner_account=ACCOUNT_A,
        assigned_at=BASE_TIME,
        expires_at=EXPIRES,
    )
    seed_vouchers(
        session_factory,
        ["y1"],
        status="verified",
        owner_account=ACCOUNT_B,
        is_redeemed=True,
        assigned_at=BASE_TIME,
        expires_at=EXPIRES,
        verified_at=BASE_TIME,
    )
    with VoucherUnitOfWork(session_factory) as uow:
        analytics = uow.vouchers.analytics()

    assert analytics.by_status() == {"available": 2, "assigned": 1, "verified": 1}
    assert analytics.redeemed == 1
    assert analytics.total == 4


def test_analytics_on_empty_pool(session_factory) -> None:
    with VoucherUnitOfWork(session_factory) as uow:
        analytics = uow.vouchers.analytics()
    assert analytics.to_payload() == {"total": 0, "available": 0, "assigned": 0, "verified": 0, "redeemed": 0}
