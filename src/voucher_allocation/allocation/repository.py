"""Voucher store queries.

All writes are single set-based statements guarded by ``WHERE`` preconditions;
the repository never reads a row and then writes it back.
"""
from __future__ import annotations

from datetime import datetime
from typing import Collection

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.orm import Session

from voucher_allocation.infrastructure.persistence.models import (
    ACTIVE_STATUSES,
    STATUS_ASSIGNED,
    STATUS_AVAILABLE,
    STATUS_VERIFIED,
    VoucherModel,
)

from .contracts import PoolAnalytics


class VoucherRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def get(self, voucher_id: str) -> VoucherModel | None:
        return self._session.get(VoucherModel, voucher_id)

    def reset_expired(self, *, now: datetime) -> int:
        """Return every lapsed, unverified assignment to the pool.

        Rows already flagged as redeemed keep their owner; an available row
        must never carry the redeemed flag.
        """

        stmt = (
            update(VoucherModel)
            .where(
                VoucherModel.status == STATUS_ASSIGNED,
                VoucherModel.is_redeemed.is_(False),
                VoucherModel.expires_at < now,
            )
            .values(
                status=STATUS_AVAILABLE,
                owner_account=None,
                assigned_at=None,
                expires_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount or 0

    def find_active_for_account(self, account: str) -> VoucherModel | None:
        stmt = (
            select(VoucherModel)
            .where(
                VoucherModel.owner_account == account,
                VoucherModel.status.in_(ACTIVE_STATUSES),
            )
            .order_by(VoucherModel.assigned_at.desc())
            .limit(1)
        )
        return self._session.execute(stmt).scalar_one_or_none()

    def next_available(self, *, exclude: Collection[str] = ()) -> VoucherModel | None:
        """Oldest available candidate, skipping ids in ``exclude``."""

        stmt = select(VoucherModel).where(
            VoucherModel.status == STATUS_AVAILABLE,
            VoucherModel.is_redeemed.is_(False),
        )
        if exclude:
            stmt = stmt.where(VoucherModel.voucher_id.not_in(list(exclude)))
        stmt = stmt.order_by(VoucherModel.created_at.asc(), VoucherModel.voucher_id.asc()).limit(1)
        return self._session.execute(stmt).scalar_one_or_none()

    def claim(self, voucher_id: str, *, account: str, now: datetime, expires_at: datetime) -> bool:
        """Compare-and-swap ``available`` → ``assigned``; ``False`` when the row moved."""

        stmt = (
            update(VoucherModel)
            .where(
                VoucherModel.voucher_id == voucher_id,
                VoucherModel.status == STATUS_AVAILABLE,
                VoucherModel.is_redeemed.is_(False),
            )
            .values(
                status=STATUS_ASSIGNED,
                owner_account=account,
                assigned_at=now,
                expires_at=expires_at,
                verified_at=None,
                redeemed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return (self._session.execute(stmt).rowcount or 0) == 1

    def delete_consumed(self, voucher_id: str) -> int:
        """Remove a voucher the authority reports as already redeemed."""

        stmt = (
            delete(VoucherModel)
            .where(
                VoucherModel.voucher_id == voucher_id,
                VoucherModel.status.in_((STATUS_AVAILABLE, STATUS_ASSIGNED)),
            )
            .execution_options(synchronize_session=False)
        )
        return self._session.execute(stmt).rowcount or 0

    def analytics(self) -> PoolAnalytics:
        stmt = select(
            _count_where(VoucherModel.status == STATUS_AVAILABLE),
            _count_where(VoucherModel.status == STATUS_ASSIGNED),
            _count_where(VoucherModel.status == STATUS_VERIFIED),
            _count_where(VoucherModel.is_redeemed.is_(True)),
        ).select_from(VoucherModel)
        available, assigned, verified, redeemed = self._session.execute(stmt).one()
        return PoolAnalytics(
            available=int(available or 0),
            assigned=int(assigned or 0),
            verified=int(verified or 0),
            redeemed=int(redeemed or 0),
        )


def _count_where(condition):
    return func.coalesce(func.sum(case((condition, 1), else_=0)), 0)


__all__ = ["VoucherRepository"]
