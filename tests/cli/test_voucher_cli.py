from __future__ import annotations

import json

import pytest

from voucher_allocation import cli
from voucher_allocation.allocation import HttpVerificationClient
from voucher_allocation.config import AppConfig, DatabaseConfig
from voucher_allocation.factories import build_runtime

from tests.conftest import ACCOUNT_A, StubVerifier, load_voucher, seed_vouchers


@pytest.fixture()
def runtime_builder(tmp_path, clock):
    config = AppConfig(database=DatabaseConfig(dsn=f"sqlite:///{tmp_path / 'cli.db'}"))
    runtimes = []

    def _build():
        runtime = build_runtime(config, clock=clock, verifier=StubVerifier())
        runtimes.append(runtime)
        return runtime

    _build.runtimes = runtimes
    return _build


def _run(argv, runtime_builder, capsys):
    code = cli.main(argv, runtime_builder=runtime_builder)
    captured = capsys.readouterr()
    return code, captured.out, captured.err


def test_init_db_then_allocate(runtime_builder, capsys) -> None:
    code, out, _ = _run(["init-db"], runtime_builder, capsys)
    assert code == 0
    assert json.loads(out)["schema"] == "ok"

    seed_vouchers(runtime_builder.runtimes[0].session_factory, ["v1"])
    code, out, _ = _run(["allocate", ACCOUNT_A], runtime_builder, capsys)

    assert code == 0
    assert json.loads(out)["voucherId"] == "v1"
    assert load_voucher(runtime_builder.runtimes[-1].session_factory, "v1").owner_account == ACCOUNT_A


def test_allocate_reports_errors_as_json(runtime_builder, capsys) -> None:
    _run(["init-db"], runtime_builder, capsys)

    code, _, err = _run(["allocate", "not-an-address"], runtime_builder, capsys)
    assert code == 2
    assert json.loads(err)["error"]["code"] == "VALIDATION_ERROR"

    code, _, err = _run(["allocate", ACCOUNT_A], runtime_builder, capsys)
    assert code == 1
    assert json.loads(err)["error"]["code"] == "POOL_EXHAUSTED"


def test_stats_and_sweep(runtime_builder, clock, capsys) -> None:
    _run(["init-db"], runtime_builder, capsys)
    seed_vouchers(runtime_builder.runtimes[0].session_factory, ["v1", "v2"])
    _run(["allocate", ACCOUNT_A], runtime_builder, capsys)

    code, out, _ = _run(["stats"], runtime_builder, capsys)
    assert code == 0
    assert json.loads(out)["assigned"] == 1

    clock.advance(25 * 3600)
    code, out, _ = _run(["sweep"], runtime_builder, capsys)
    assert code == 0
    assert json.loads(out) == {"reset": 1}

    code, out, _ = _run(["sweep", "--loop", "--interval", "1", "--max-runs", "1"], runtime_builder, capsys)
    assert code == 0
    assert json.loads(out) == {"reset": 0}


def test_unknown_command_exits_with_usage() -> None:
    with pytest.raises(SystemExit) as exc:
        cli.main(["explode"], runtime_builder=lambda: pytest.fail("runtime must not be built"))
    assert exc.value.code == 2


class _ClosingVerifier(StubVerifier):
    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    def close(self) -> None:
        self.closed = True


def test_main_releases_runtime(tmp_path, clock, capsys) -> None:
    config = AppConfig(database=DatabaseConfig(dsn=f"sqlite:///{tmp_path / 'cli.db'}"))
    verifier = _ClosingVerifier()

    code = cli.main(["init-db"], runtime_builder=lambda: build_runtime(config, clock=clock, verifier=verifier))
    capsys.readouterr()

    assert code == 0
    assert verifier.closed is True


def test_runtime_close_shuts_owned_http_client(tmp_path) -> None:
    config = AppConfig(database=DatabaseConfig(dsn=f"sqlite:///{tmp_path / 'cli.db'}"))
    runtime = build_runtime(config)
    assert isinstance(runtime.verifier, HttpVerificationClient)

    runtime.close()

    assert runtime.verifier._client.is_closed is True
