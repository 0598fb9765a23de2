"""Factory helpers wiring allocation components together."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

import httpx
from prometheus_client import CollectorRegistry
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .allocation import (
    AllocatorPolicy,
    ExpirationSweeper,
    HttpVerificationClient,
    VerificationClient,
    VoucherAllocator,
    sqlalchemy_uow_factory,
)
from .config import AppConfig, get_config
from .core.clock import Clock, SystemClock
from .infrastructure.monitoring.metrics import AllocationMetrics, build_allocation_metrics
from .infrastructure.persistence.session import make_engine, make_session_factory


@dataclass(slots=True)
class Runtime:
    """Everything a process needs to serve allocations."""

    config: AppConfig
    engine: Engine
    session_factory: sessionmaker
    metrics: AllocationMetrics
    allocator: VoucherAllocator
    sweeper: ExpirationSweeper
    verifier: VerificationClient

    def close(self) -> None:
        """Release the outbound HTTP client and pooled connections."""

        close_verifier = getattr(self.verifier, "close", None)
        if close_verifier is not None:
            close_verifier()
        self.engine.dispose()


def build_policy(config: AppConfig) -> AllocatorPolicy:
    return AllocatorPolicy(
        max_attempts=config.allocation.max_attempts,
        assignment_window=timedelta(hours=config.allocation.assignment_window_hours),
        retry_after_seconds=config.allocation.retry_after_seconds,
        verification_url_base=config.verification.url_base,
    )


def build_runtime(
    config: AppConfig | None = None,
    *,
    clock: Clock | None = None,
    registry: CollectorRegistry | None = None,
    http_client: httpx.Client | None = None,
    verifier: VerificationClient | None = None,
) -> Runtime:
    """Create engine, allocator and sweeper from configuration."""

    settings = config or get_config()
    active_clock = clock or SystemClock()
    metrics = build_allocation_metrics(registry)
    engine = make_engine(
        settings.database.dsn,
        statement_timeout_ms=settings.database.statement_timeout_ms,
        echo=settings.database.echo,
        query_observer=metrics.observe_query,
    )
    session_factory = make_session_factory(engine)
    uow_factory = sqlalchemy_uow_factory(session_factory)
    sweeper = ExpirationSweeper(uow_factory=uow_factory, clock=active_clock, metrics=metrics)
    active_verifier = verifier or HttpVerificationClient(
        endpoint=settings.verification.endpoint,
        timeout_seconds=settings.verification.timeout_seconds,
        client=http_client,
        metrics=metrics,
    )
    allocator = VoucherAllocator(
        uow_factory=uow_factory,
        verifier=active_verifier,
        clock=active_clock,
        policy=build_policy(settings),
        sweeper=sweeper,
        metrics=metrics,
    )
    return Runtime(
        config=settings,
        engine=engine,
        session_factory=session_factory,
        metrics=metrics,
        allocator=allocator,
        sweeper=sweeper,
        verifier=active_verifier,
    )


__all__ = ["Runtime", "build_policy", "build_runtime"]
