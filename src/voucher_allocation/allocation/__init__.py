"""Voucher allocation public API."""

from .allocator import AllocatorPolicy, VoucherAllocator
from .contracts import (
    AllocationRequest,
    AllocationSuccess,
    PoolAnalytics,
    VoucherSnapshot,
    build_verification_url,
    normalize_account_id,
)
from .errors import (
    PoolExhausted,
    RaceLost,
    StaleAssignment,
    TransactionFailure,
    ValidationError,
    VerificationUnavailable,
    VoucherError,
)
from .repository import VoucherRepository
from .sweeper import ExpirationSweeper
from .uow import UnitOfWorkError, UnitOfWorkFactory, VoucherUnitOfWork, sqlalchemy_uow_factory
from .verification import HttpVerificationClient, VerificationClient, VerificationOutcome

__all__ = [
    "AllocationRequest",
    "AllocationSuccess",
    "AllocatorPolicy",
    "ExpirationSweeper",
    "HttpVerificationClient",
    "PoolAnalytics",
    "PoolExhausted",
    "RaceLost",
    "StaleAssignment",
    "TransactionFailure",
    "UnitOfWorkError",
    "UnitOfWorkFactory",
    "ValidationError",
    "VerificationClient",
    "VerificationOutcome",
    "VerificationUnavailable",
    "VoucherAllocator",
    "VoucherError",
    "VoucherRepository",
    "VoucherSnapshot",
    "VoucherUnitOfWork",
    "build_verification_url",
    "normalize_account_id",
    "sqlalchemy_uow_factory",
]
