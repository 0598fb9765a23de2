"""Voucher allocation service."""

from .allocation import (
    AllocationRequest,
    AllocationSuccess,
    AllocatorPolicy,
    ExpirationSweeper,
    HttpVerificationClient,
    PoolAnalytics,
    PoolExhausted,
    StaleAssignment,
    TransactionFailure,
    ValidationError,
    VerificationOutcome,
    VerificationUnavailable,
    VoucherAllocator,
    VoucherError,
)
from .config import AppConfig, get_config

__all__ = [
    "AllocationRequest",
    "AllocationSuccess",
    "AllocatorPolicy",
    "AppConfig",
    "ExpirationSweeper",
    "HttpVerificationClient",
    "PoolAnalytics",
    "PoolExhausted",
    "StaleAssignment",
    "TransactionFailure",
    "ValidationError",
    "VerificationOutcome",
    "VerificationUnavailable",
    "VoucherAllocator",
    "VoucherError",
    "get_config",
]
