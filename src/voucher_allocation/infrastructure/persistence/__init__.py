"""Relational persistence for the voucher pool."""

from .models import (
    ACTIVE_STATUSES,
    STATUS_ASSIGNED,
    STATUS_AVAILABLE,
    STATUS_VERIFIED,
    VOUCHER_STATUSES,
    Base,
    VoucherModel,
)
from .session import create_schema, make_engine, make_session_factory

__all__ = [
    "ACTIVE_STATUSES",
    "STATUS_ASSIGNED",
    "STATUS_AVAILABLE",
    "STATUS_VERIFIED",
    "VOUCHER_STATUSES",
    "Base",
    "VoucherModel",
    "create_schema",
    "make_engine",
    "make_session_factory",
]
