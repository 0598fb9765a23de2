"""FastAPI application exposing voucher allocation."""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from pydantic import BaseModel, ConfigDict, Field

from voucher_allocation.allocation import (
    AllocationRequest,
    VoucherAllocator,
    VoucherError,
)
from voucher_allocation.infrastructure.monitoring.logging_adapter import (
    CorrelationIdMiddleware,
    configure_json_logging,
    get_correlation_id,
)


APP_START_TS = time.time()


class PoolAnalyticsBody(BaseModel):
    total: int
    available: int
    assigned: int
    verified: int
    redeemed: int


class VoucherResponseBody(BaseModel):
    """Response envelope mapping allocation results."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    voucher_id: str = Field(alias="voucherId")
    verification_url: str = Field(alias="verificationUrl")
    status: str
    is_verified: bool = Field(alias="isVerified")
    verified_at: datetime | None = Field(default=None, alias="verifiedAt")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    assigned_at: datetime | None = Field(default=None, alias="assignedAt")
    reused: bool = False
    analytics: PoolAnalyticsBody | None = None


class StatusResponse(BaseModel):
    """Health/status endpoint response."""

    status: str
    correlation_id: str = Field(serialization_alias="correlationId")
    uptime_seconds: float = Field(serialization_alias="uptimeSeconds")
    service_time: str = Field(serialization_alias="serviceTime")


def _error_response(exc: VoucherError) -> JSONResponse:
    headers = {"X-Correlation-ID": get_correlation_id()}
    if exc.retry_after_seconds is not None:
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(status_code=exc.http_status, content=exc.to_payload(), headers=headers)


def create_app(
    allocator: VoucherAllocator,
    *,
    registry: CollectorRegistry | None = None,
    configure_logging: bool = False,
) -> FastAPI:
    """Build and configure the FastAPI application."""

    if configure_logging:
        configure_json_logging()

    app = FastAPI(title="Voucher Allocation API", version="1.0")
    app.state.allocator = allocator
    app.state.started_at = APP_START_TS
    app.add_middleware(CorrelationIdMiddleware)

    @app.exception_handler(VoucherError)
    async def _voucher_error_handler(_: Request, exc: VoucherError) -> JSONResponse:
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"),
                "message": str(error.get("msg", "")).split("|", 1)[-1],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Invalid account identifier provided.",
                    "details": details,
                }
            },
            headers={"X-Correlation-ID": get_correlation_id()},
        )

    # analytics is only present on fresh assignments
    @app.post("/vouchers", response_model=VoucherResponseBody, response_model_exclude_unset=True)
    def allocate_voucher(payload: AllocationRequest) -> dict[str, Any]:
        return allocator.allocate(payload).to_payload()

    @app.get("/vouchers/stats", response_model=PoolAnalyticsBody)
    def voucher_stats() -> PoolAnalyticsBody:
        return PoolAnalyticsBody(**allocator.pool_analytics().to_payload())

    @app.get("/status", response_model=StatusResponse)
    async def service_status() -> JSONResponse:
        body = StatusResponse(
            status="ok",
            correlation_id=get_correlation_id(),
            uptime_seconds=round(time.time() - APP_START_TS, 3),
            service_time=datetime.now(timezone.utc).isoformat(),
        )
        return JSONResponse(content=body.model_dump(by_alias=True))

    if registry is not None:

        @app.get("/metrics")
        async def metrics() -> Response:
            return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    return app


def create_application() -> FastAPI:
    """ASGI factory reading configuration from the environment."""

    from voucher_allocation.factories import build_runtime
    from voucher_allocation.infrastructure.persistence.session import create_schema

    runtime = build_runtime()
    create_schema(runtime.engine)
    return create_app(
        runtime.allocator,
        registry=runtime.metrics.registry,
        configure_logging=True,
    )


__all__ = ["VoucherResponseBody", "create_app", "create_application"]
