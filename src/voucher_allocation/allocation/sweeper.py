"""Expiration sweeper returning lapsed assignments to the pool."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from voucher_allocation.core.clock import Clock
from voucher_allocation.infrastructure.monitoring.metrics import AllocationMetrics

from .errors import TransactionFailure
from .uow import UnitOfWorkError, UnitOfWorkFactory


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ExpirationSweeper:
    """Resets ``assigned`` rows whose ``expires_at`` passed back to ``available``.

    The update is set-based and unconditional per row, so concurrent or
    repeated runs converge on the same state.
    """

    uow_factory: UnitOfWorkFactory
    clock: Clock
    metrics: AllocationMetrics | None = None
    sleep: Callable[[float], None] = field(default=time.sleep)

    def sweep(self) -> int:
        now = self.clock.now()
        try:
            with self.uow_factory() as uow:
                reset = uow.vouchers.reset_expired(now=now)
        except (SQLAlchemyError, UnitOfWorkError) as exc:
            logger.error(
                "expiration sweep failed",
                extra={"code": "SWEEP_FAILED", "detail": str(exc)},
            )
            raise TransactionFailure("Voucher store is unavailable.") from exc
        if reset:
            logger.info(
                "expired assignments returned to pool",
                extra={"code": "SWEEP_RESET", "count": reset},
            )
        if self.metrics is not None:
            self.metrics.record_swept(reset)
        return reset

    def run_loop(self, *, interval: float = 60.0, once: bool = False, max_runs: int | None = None) -> int:
        """Sweep periodically; returns the total number of rows reset."""

        total = 0
        runs = 0
        while True:
            try:
                total += self.sweep()
            except TransactionFailure:
                # next tick retries; the store may come back
                pass
            runs += 1
            if once or (max_runs is not None and runs >= max_runs):
                return total
            self.sleep(interval)


__all__ = ["ExpirationSweeper"]
