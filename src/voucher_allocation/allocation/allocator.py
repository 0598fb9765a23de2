"""Voucher allocation orchestrating sweep, lookup, verification and claim."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from voucher_allocation.core.clock import Clock, ensure_utc
from voucher_allocation.infrastructure.monitoring.metrics import AllocationMetrics
from voucher_allocation.infrastructure.persistence.models import STATUS_ASSIGNED

from .contracts import (
    AllocationRequest,
    AllocationSuccess,
    PoolAnalytics,
    VoucherSnapshot,
    build_verification_url,
)
from .errors import (
    PoolExhausted,
    RaceLost,
    StaleAssignment,
    TransactionFailure,
    VerificationUnavailable,
    VoucherError,
)
from .sweeper import ExpirationSweeper
from .uow import UnitOfWorkError, UnitOfWorkFactory
from .verification import VerificationClient, VerificationOutcome


logger = logging.getLogger(__name__)

_EXHAUSTED = "exhausted"
_UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class AllocatorPolicy:
    """Loop bounds and user-facing hints."""

    max_attempts: int = 10
    assignment_window: timedelta = timedelta(hours=24)
    retry_after_seconds: int = 30
    verification_url_base: str = "https://silksecure.net/holonym/diff-wallet/phone/issuance/prereqs"


class VoucherAllocator:
    """Hands out at most one live voucher per account.

    Correctness under concurrency rests on the conditional claim in
    :meth:`VoucherRepository.claim`; the allocator holds no locks and may run
    in any number of processes sharing one store.
    """

    def __init__(
        self,
        *,
        uow_factory: UnitOfWorkFactory,
        verifier: VerificationClient,
        clock: Clock,
        policy: AllocatorPolicy | None = None,
        sweeper: ExpirationSweeper | None = None,
        metrics: AllocationMetrics | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._verifier = verifier
        self._clock = clock
        self._policy = policy or AllocatorPolicy()
        self._metrics = metrics
        self._sweeper = sweeper or ExpirationSweeper(uow_factory=uow_factory, clock=clock, metrics=metrics)

    @property
    def policy(self) -> AllocatorPolicy:
        return self._policy

    def allocate(self, request: AllocationRequest | Any) -> AllocationSuccess:
        started = self._clock.monotonic()
        outcome = "error"
        try:
            result = self._allocate(AllocationRequest.parse(request))
            outcome = "reused" if result.reused else "assigned"
            return result
        except VoucherError as exc:
            outcome = exc.code.lower()
            raise
        finally:
            if self._metrics is not None:
                self._metrics.record_outcome(outcome)
                self._metrics.observe_duration(self._clock.monotonic() - started)

    def pool_analytics(self) -> PoolAnalytics:
        try:
            with self._uow_factory() as uow:
                analytics = uow.vouchers.analytics()
        except (SQLAlchemyError, UnitOfWorkError) as exc:
            raise TransactionFailure("Voucher store is unavailable.") from exc
        if self._metrics is not None:
            self._metrics.update_pool(analytics.by_status())
        return analytics

    def _allocate(self, request: AllocationRequest) -> AllocationSuccess:
        account = request.account_id
        self._sweeper.sweep()

        existing = self._lookup(account)
        if existing is not None:
            return existing

        skipped: set[str] = set()
        last_failure = _EXHAUSTED
        for attempt in range(1, self._policy.max_attempts + 1):
            candidate_id = self._next_candidate(skipped)
            if candidate_id is None:
                if skipped and last_failure == _UNAVAILABLE:
                    break
                raise self._pool_exhausted()

            verdict = self._verifier.check(candidate_id)
            if verdict is VerificationOutcome.REDEEMED:
                self._prune(candidate_id)
                last_failure = _EXHAUSTED
                continue
            if verdict is not VerificationOutcome.NOT_REDEEMED:
                logger.warning(
                    "candidate skipped after inconclusive verification",
                    extra={"code": "VERIFICATION_INCONCLUSIVE", "voucher_id": candidate_id, "attempt": attempt},
                )
                skipped.add(candidate_id)
                last_failure = _UNAVAILABLE
                continue

            try:
                return self._claim(candidate_id, account=account, attempt=attempt)
            except RaceLost:
                last_failure = _EXHAUSTED
                continue

        if last_failure == _UNAVAILABLE:
            logger.error(
                "verification authority unavailable for every candidate",
                extra={"code": "VERIFICATION_UNAVAILABLE", "account": account, "skipped": len(skipped)},
            )
            raise VerificationUnavailable(
                "Could not confirm voucher status with the verification service. Please try again later.",
                retry_after_seconds=self._policy.retry_after_seconds,
            )
        raise self._pool_exhausted()

    def _lookup(self, account: str) -> AllocationSuccess | None:
        try:
            with self._uow_factory() as uow:
                row = uow.vouchers.find_active_for_account(account)
                snapshot = VoucherSnapshot.from_model(row) if row is not None else None
        except (SQLAlchemyError, UnitOfWorkError) as exc:
            raise TransactionFailure("Voucher store is unavailable.") from exc
        if snapshot is None:
            return None
        if snapshot.status == STATUS_ASSIGNED and snapshot.expires_at is not None:
            if snapshot.expires_at < ensure_utc(self._clock.now()):
                raise StaleAssignment(
                    "Your previous voucher expired and is being released. Please try again shortly.",
                    retry_after_seconds=self._policy.retry_after_seconds,
                )
        return AllocationSuccess(
            voucher=snapshot,
            verification_url=self._url(snapshot.voucher_id),
            reused=True,
        )

    def _next_candidate(self, skipped: set[str]) -> str | None:
        try:
            with self._uow_factory() as uow:
                row = uow.vouchers.next_available(exclude=skipped)
                return row.voucher_id if row is not None else None
        except (SQLAlchemyError, UnitOfWorkError) as exc:
            raise TransactionFailure("Voucher store is unavailable.") from exc

    def _prune(self, voucher_id: str) -> None:
        try:
            with self._uow_factory() as uow:
                deleted = uow.vouchers.delete_consumed(voucher_id)
        except (SQLAlchemyError, UnitOfWorkError) as exc:
            raise TransactionFailure("Voucher store is unavailable.") from exc
        logger.info(
            "voucher already redeemed upstream; removed from pool",
            extra={"code": "VOUCHER_PRUNED", "voucher_id": voucher_id, "deleted": deleted},
        )
        if self._metrics is not None and deleted:
            self._metrics.record_pruned()

    def _claim(self, voucher_id: str, *, account: str, attempt: int) -> AllocationSuccess:
        now = self._clock.now()
        expires_at = now + self._policy.assignment_window
        try:
            with self._uow_factory() as uow:
                repo = uow.vouchers
                if not repo.claim(voucher_id, account=account, now=now, expires_at=expires_at):
                    self._record_claim("race_lost")
                    logger.info(
                        "voucher claimed concurrently; trying next candidate",
                        extra={"code": "CLAIM_RACE_LOST", "voucher_id": voucher_id, "attempt": attempt},
                    )
                    raise RaceLost(voucher_id)
                row = repo.get(voucher_id)
                snapshot = VoucherSnapshot.from_model(row)
        except IntegrityError:
            # the same account won a parallel request first
            self._record_claim("duplicate_owner")
            existing = self._lookup(account)
            if existing is None:
                raise TransactionFailure("Voucher assignment conflicted with an unknown row.")
            return existing
        except (SQLAlchemyError, UnitOfWorkError) as exc:
            logger.error(
                "voucher claim transaction failed",
                extra={"code": "TX_FAILED", "voucher_id": voucher_id, "detail": str(exc)},
            )
            raise TransactionFailure("Voucher assignment failed. Please try again.") from exc

        self._record_claim("claimed")
        analytics = self._analytics_after_claim()
        logger.info(
            "voucher assigned",
            extra={
                "code": "VOUCHER_ASSIGNED",
                "voucher_id": voucher_id,
                "account": account,
                "attempt": attempt,
                "expires_at": snapshot.expires_at.isoformat() if snapshot.expires_at else None,
            },
        )
        return AllocationSuccess(
            voucher=snapshot,
            verification_url=self._url(voucher_id),
            reused=False,
            attempts=attempt,
            analytics=analytics,
        )

    def _analytics_after_claim(self) -> PoolAnalytics | None:
        try:
            return self.pool_analytics()
        except TransactionFailure:
            logger.warning("pool analytics unavailable after assignment", extra={"code": "ANALYTICS_FAILED"})
            return None

    def _pool_exhausted(self) -> PoolExhausted:
        return PoolExhausted(
            "No available vouchers at the moment. Please try again later.",
            retry_after_seconds=self._policy.retry_after_seconds,
        )

    def _record_claim(self, result: str) -> None:
        if self._metrics is not None:
            self._metrics.record_claim(result)

    def _url(self, voucher_id: str) -> str:
        return build_verification_url(voucher_id, self._policy.verification_url_base)


__all__ = ["AllocatorPolicy", "VoucherAllocator"]
