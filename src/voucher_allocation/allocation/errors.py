"""Error taxonomy for voucher allocation.

Every failure that leaves :class:`~voucher_allocation.allocation.allocator.VoucherAllocator`
is one of the classes below. Store and transport exceptions are reclassified at
the loop boundary so callers never see SQLAlchemy or httpx types.
"""
from __future__ import annotations


class VoucherError(Exception):
    """Base class for user-visible allocation failures."""

    code: str = "VOUCHER_ERROR"
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str, *, retry_after_seconds: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.retry_after_seconds = retry_after_seconds

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.code}: {self.message}"

    def to_payload(self) -> dict[str, object]:
        body: dict[str, object] = {"code": self.code, "message": self.message}
        if self.retry_after_seconds is not None:
            body["retryAfterSeconds"] = self.retry_after_seconds
        return {"error": body}


class ValidationError(VoucherError):
    code = "VALIDATION_ERROR"
    http_status = 400


class PoolExhausted(VoucherError):
    """No candidate cleared both the external check and the claim."""

    code = "POOL_EXHAUSTED"
    http_status = 404
    retryable = True


class VerificationUnavailable(VoucherError):
    """Every attempted candidate got an inconclusive external answer."""

    code = "VERIFICATION_UNAVAILABLE"
    http_status = 503
    retryable = True


class StaleAssignment(VoucherError):
    """The account still holds an assignment whose window already elapsed."""

    code = "STALE_ASSIGNMENT"
    http_status = 409
    retryable = True


class TransactionFailure(VoucherError):
    """Unexpected store-layer failure; never retried internally."""

    code = "TRANSACTION_FAILURE"
    http_status = 500


class RaceLost(Exception):
    """Internal signal: a conditional claim matched zero rows."""

    def __init__(self, voucher_id: str) -> None:
        super().__init__(voucher_id)
        self.voucher_id = voucher_id


__all__ = [
    "PoolExhausted",
    "RaceLost",
    "StaleAssignment",
    "TransactionFailure",
    "ValidationError",
    "VerificationUnavailable",
    "VoucherError",
]
