# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

_DURATION_BUCKETS: tuple[float, ...] = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0)
_QUERY_BUCKETS: tuple[float, ...] = (0.001, 0.005, 0.01, 0.05, 0.1, 0.5)


@dataclass(slots=True)
class AllocationMetrics:
    """Prometheus collectors for the allocation path."""

    registry: CollectorRegistry
    allocation_total: Counter
    allocation_duration_seconds: Histogram
    verification_calls_total: Counter
    claim_attempts_total: Counter
    swept_total: Counter
    pruned_total: Counter
    pool_size: Gauge
    db_query_duration_seconds: Histogram

    def record_outcome(self, outcome: str) -> None:
        self.allocation_total.labels(outcome=outcome).inc()

    def observe_duration(self, seconds: float) -> None:
        self.allocation_duration_seconds.observe(seconds)

    def record_verification(self, result: str) -> None:
        self.verification_calls_total.labels(result=result).inc()

    def record_claim(self, result: str) -> None:
        self.claim_attempts_total.labels(result=result).inc()

    def record_swept(self, count: int) -> None:
        if count:
            self.swept_total.inc(count)

    def record_pruned(self) -> None:
        self.pruned_total.inc()

    def update_pool(self, counts: Mapping[str, int]) -> None:
        for status, value in counts.items():
            self.pool_size.labels(status=status).set(value)

    def observe_query(self, seconds: float) -> None:
        self.db_query_duration_seconds.observe(seconds)


def build_allocation_metrics(registry: CollectorRegistry | None = None) -> AllocationMetrics:
    reg = registry or CollectorRegistry()
    return AllocationMetrics(
        registry=reg,
        allocation_total=Counter(
            "voucher_allocation_total",
            "Allocation requests by terminal outcome.",
            labelnames=("outcome",),
            registry=reg,
        ),
        allocation_duration_seconds=Histogram(
            "voucher_allocation_duration_seconds",
            "Wall time of one allocation request.",
            buckets=_DURATION_BUCKETS,
            registry=reg,
        ),
        verification_calls_total=Counter(
            "voucher_verification_calls_total",
            "External verification calls by result.",
            labelnames=("result",),
            registry=reg,
        ),
        claim_attempts_total=Counter(
            "voucher_claim_attempts_total",
            "Conditional claim attempts by result.",
            labelnames=("result",),
            registry=reg,
        ),
        swept_total=Counter(
            "voucher_swept_total",
            "Expired assignments reset to available.",
            registry=reg,
        ),
        pruned_total=Counter(
            "voucher_pruned_total",
            "Vouchers deleted after the authority reported prior redemption.",
            registry=reg,
        ),
        pool_size=Gauge(
            "voucher_pool_size",
            "Voucher rows by status as of the last analytics read.",
            labelnames=("status",),
            registry=reg,
        ),
        db_query_duration_seconds=Histogram(
            "voucher_db_query_duration_seconds",
            "DB query duration",
            buckets=_QUERY_BUCKETS,
            registry=reg,
        ),
    )


__all__ = ["AllocationMetrics", "build_allocation_metrics"]
