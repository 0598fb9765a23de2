# -*- coding: utf-8 -*-
from __future__ import annotations

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Index,
    String,
    false,
    func,
    text,
)
from sqlalchemy.orm import declarative_base


Base = declarative_base()

STATUS_AVAILABLE = "available"
STATUS_ASSIGNED = "assigned"
STATUS_VERIFIED = "verified"
VOUCHER_STATUSES = (STATUS_AVAILABLE, STATUS_ASSIGNED, STATUS_VERIFIED)
ACTIVE_STATUSES = (STATUS_ASSIGNED, STATUS_VERIFIED)

_ACTIVE_OWNER_PREDICATE = "status IN ('assigned','verified') AND owner_account IS NOT NULL"


class VoucherModel(Base):
    """Single-use verification voucher rows forming the allocation pool."""

    __tablename__ = "vouchers"

    voucher_id = Column(String(128), primary_key=True)
    status = Column(
        Enum(*VOUCHER_STATUSES, name="voucher_status", native_enum=False),
        nullable=False,
        default=STATUS_AVAILABLE,
        server_default=STATUS_AVAILABLE,
    )
    is_redeemed = Column(Boolean, nullable=False, default=False, server_default=false())
    owner_account = Column(String(64), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('available','assigned','verified')",
            name="ck_voucher_status_literal",
        ),
        CheckConstraint(
            "status <> 'available' OR (owner_account IS NULL AND NOT is_redeemed)",
            name="ck_voucher_available_unowned",
        ),
        CheckConstraint(
            "status <> 'assigned' OR expires_at IS NOT NULL",
            name="ck_voucher_assigned_expiry",
        ),
        Index("ix_vouchers_fifo", "status", "created_at"),
        Index("ix_vouchers_expiry", "status", "expires_at"),
        Index(
            "ux_vouchers_active_owner",
            "owner_account",
            unique=True,
            postgresql_where=text(_ACTIVE_OWNER_PREDICATE),
            sqlite_where=text(_ACTIVE_OWNER_PREDICATE),
        ),
    )

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"VoucherModel(voucher_id={self.voucher_id!r}, status={self.status!r})"
