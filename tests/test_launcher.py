from __future__ import annotations

import logging
import signal
from pathlib import Path

import pytest

from detox_cli.launcher import (
    RERUN_INDEX_ENV,
    invocation_env_overlay,
    launch_test_runner,
)
from detox_cli.models import ForwardedInvocation, LaunchFailure


def _env_dump_invocation(out_path: Path, **kwargs: object) -> ForwardedInvocation:
    # `sh -c '...' <path>` binds the spec path to $0 inside the script.
    return ForwardedInvocation(
        program="sh -c 'env > \"$0\"'",
        specs=(str(out_path),),
        **kwargs,  # type: ignore[arg-type]
    )


def _read_env(path: Path) -> dict[str, str]:
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        if "=" in line:
            key, value = line.split("=", 1)
            values[key] = value
    return values


def test_overlay_stringifies_values_and_adds_rerun_index() -> None:
    invocation = ForwardedInvocation(
        program="jest",
        env={"reportSpecs": False, "DETOX_START_TIMESTAMP": 123, "gpu": "host"},
        rerun_index=2,
    )
    assert invocation_env_overlay(invocation) == {
        "reportSpecs": "false",
        "DETOX_START_TIMESTAMP": "123",
        "gpu": "host",
        RERUN_INDEX_ENV: "2",
    }


def test_first_attempt_has_no_rerun_index(tmp_path: Path) -> None:
    out_path = tmp_path / "env.txt"
    invocation = _env_dump_invocation(out_path, env={"readOnlyEmu": True})

    launch_test_runner(invocation, base_env={"PATH": "/usr/bin:/bin", "KEEP": "me"})

    child_env = _read_env(out_path)
    assert child_env["readOnlyEmu"] == "true"
    assert child_env["KEEP"] == "me"
    assert RERUN_INDEX_ENV not in child_env


def test_inherited_rerun_index_is_dropped_on_first_attempt(tmp_path: Path) -> None:
    out_path = tmp_path / "env.txt"
    invocation = _env_dump_invocation(out_path)

    launch_test_runner(
        invocation, base_env={"PATH": "/usr/bin:/bin", RERUN_INDEX_ENV: "3"}
    )

    assert RERUN_INDEX_ENV not in _read_env(out_path)


def test_inherited_rerun_index_is_replaced_on_rerun(tmp_path: Path) -> None:
    out_path = tmp_path / "env.txt"
    invocation = _env_dump_invocation(out_path, rerun_index=1)

    launch_test_runner(
        invocation, base_env={"PATH": "/usr/bin:/bin", RERUN_INDEX_ENV: "3"}
    )

    assert _read_env(out_path)[RERUN_INDEX_ENV] == "1"


def test_rerun_attempt_exports_rerun_index(tmp_path: Path) -> None:
    out_path = tmp_path / "env.txt"
    invocation = _env_dump_invocation(out_path, rerun_index=1)

    launch_test_runner(invocation, base_env={"PATH": "/usr/bin:/bin"})

    assert _read_env(out_path)[RERUN_INDEX_ENV] == "1"


def test_overlay_replaces_inherited_values(tmp_path: Path) -> None:
    out_path = tmp_path / "env.txt"
    invocation = _env_dump_invocation(out_path, env={"loglevel": "trace"})

    launch_test_runner(
        invocation, base_env={"PATH": "/usr/bin:/bin", "loglevel": "info"}
    )

    assert _read_env(out_path)["loglevel"] == "trace"


def test_launch_logs_environment_and_command(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    invocation = ForwardedInvocation(
        program="true",
        argv={"maxWorkers": 2},
        env={"reportSpecs": False},
        specs=("e2e",),
    )
    with caplog.at_level(logging.INFO, logger="detox.launcher"):
        launch_test_runner(invocation, base_env={"PATH": "/usr/bin:/bin"})

    messages = [r.getMessage() for r in caplog.records if r.name == "detox.launcher"]
    assert messages == ["reportSpecs=false true --maxWorkers 2 e2e"]


def test_non_zero_exit_raises_launch_failure() -> None:
    invocation = ForwardedInvocation(program="exit 3")

    with pytest.raises(LaunchFailure) as excinfo:
        launch_test_runner(invocation, base_env={"PATH": "/usr/bin:/bin"})

    assert excinfo.value.returncode == 3
    assert excinfo.value.signal is None
    assert excinfo.value.exit_code == 3
    assert excinfo.value.command == "exit 3"


def test_signal_death_is_reported() -> None:
    invocation = ForwardedInvocation(program="kill -TERM $$")

    with pytest.raises(LaunchFailure) as excinfo:
        launch_test_runner(invocation, base_env={"PATH": "/usr/bin:/bin"})

    assert excinfo.value.signal == signal.SIGTERM
    assert excinfo.value.exit_code == 1
