from __future__ import annotations

import json
import logging

from voucher_allocation.infrastructure.monitoring.logging_adapter import (
    JsonLogFormatter,
    correlation_id_var,
)

from tests.conftest import ACCOUNT_A, BASE_TIME, FakeClock, seed_vouchers


def test_formatter_emits_extra_fields_and_correlation_id() -> None:
    formatter = JsonLogFormatter(clock=FakeClock())
    record = logging.LogRecord("voucher_allocation.allocation", logging.INFO, __file__, 1, "voucher assigned", (), None)
    record.code = "VOUCHER_ASSIGNED"
    record.voucher_id = "v1"

    token = correlation_id_var.set("corr-7")
    try:
        payload = json.loads(formatter.format(record))
    finally:
        correlation_id_var.reset(token)

    assert payload["ts"] == BASE_TIME.isoformat()
    assert payload["level"] == "INFO"
    assert payload["msg"] == "voucher assigned"
    assert payload["correlation_id"] == "corr-7"
    assert payload["code"] == "VOUCHER_ASSIGNED"
    assert payload["voucher_id"] == "v1"
    assert "args" not in payload and "levelno" not in payload


def test_allocator_logs_carry_codes(session_factory, build_allocator, caplog) -> None:
    seed_vouchers(session_factory, ["v1"])
    with caplog.at_level(logging.INFO, logger="voucher_allocation"):
        build_allocator().allocate(ACCOUNT_A)

    codes = [getattr(record, "code", None) for record in caplog.records]
    assert "VOUCHER_ASSIGNED" in codes
