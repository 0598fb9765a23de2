"""Client for the external voucher verification authority."""
from __future__ import annotations

import enum
import logging
from typing import Protocol

import httpx

from voucher_allocation.infrastructure.monitoring.metrics import AllocationMetrics


logger = logging.getLogger(__name__)


class VerificationOutcome(str, enum.Enum):
    REDEEMED = "redeemed"
    NOT_REDEEMED = "not_redeemed"
    INCONCLUSIVE = "inconclusive"


class VerificationClient(Protocol):
    """Answers whether a voucher was already consumed outside this system."""

    def check(self, voucher_id: str) -> VerificationOutcome:
        """Return the authority's verdict; never raise for transport problems."""


class HttpVerificationClient:
    """``POST {"voucherId": ...}`` → ``{"isRedeemed": bool}`` over httpx.

    Anything other than a 2xx response carrying a boolean ``isRedeemed`` is
    inconclusive. A missing or non-boolean flag is never read as "not redeemed".
    """

    def __init__(
        self,
        *,
        endpoint: str,
        timeout_seconds: float = 5.0,
        client: httpx.Client | None = None,
        metrics: AllocationMetrics | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(timeout_seconds))
        self._timeout = httpx.Timeout(timeout_seconds)
        self._metrics = metrics

    def check(self, voucher_id: str) -> VerificationOutcome:
        outcome = self._check(voucher_id)
        if self._metrics is not None:
            self._metrics.record_verification(outcome.value)
        return outcome

    def _check(self, voucher_id: str) -> VerificationOutcome:
        try:
            response = self._client.post(
                self._endpoint,
                json={"voucherId": voucher_id},
                timeout=self._timeout,
            )
        except httpx.TimeoutException:
            logger.warning(
                "verification call timed out",
                extra={"code": "VERIFICATION_TIMEOUT", "voucher_id": voucher_id},
            )
            return VerificationOutcome.INCONCLUSIVE
        except httpx.HTTPError as exc:
            logger.warning(
                "verification call failed",
                extra={"code": "VERIFICATION_TRANSPORT_ERROR", "voucher_id": voucher_id, "detail": str(exc)},
            )
            return VerificationOutcome.INCONCLUSIVE

        if not response.is_success:
            logger.warning(
                "verification authority returned an error status",
                extra={
                    "code": "VERIFICATION_HTTP_ERROR",
                    "voucher_id": voucher_id,
                    "status_code": response.status_code,
                    "body": response.text[:256],
                },
            )
            return VerificationOutcome.INCONCLUSIVE

        try:
            data = response.json()
        except ValueError:
            logger.warning(
                "verification response is not JSON",
                extra={"code": "VERIFICATION_MALFORMED", "voucher_id": voucher_id},
            )
            return VerificationOutcome.INCONCLUSIVE

        flag = data.get("isRedeemed") if isinstance(data, dict) else None
        if flag is True:
            return VerificationOutcome.REDEEMED
        if flag is False:
            return VerificationOutcome.NOT_REDEEMED
        logger.warning(
            "verification response lacks a boolean isRedeemed",
            extra={"code": "VERIFICATION_MALFORMED", "voucher_id": voucher_id},
        )
        return VerificationOutcome.INCONCLUSIVE

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpVerificationClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


__all__ = ["HttpVerificationClient", "VerificationClient", "VerificationOutcome"]
