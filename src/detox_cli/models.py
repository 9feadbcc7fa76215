from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any, Sequence, Union

ArgValue = Union[str, bool, int, float, list]
EnvValue = Union[str, bool, int, float]


class DetoxError(RuntimeError):
    """Base error for test command failures."""


class ConfigError(DetoxError):
    """Raised when the session or runner configuration is invalid."""

    def __init__(self, message: str, *, hint: str | None = None):
        self.message = message
        self.hint = hint
        text = message if hint is None else f"{message}\nHINT: {hint}"
        super().__init__(text)


class LaunchFailure(DetoxError):
    """Raised when the test runner process exits with a non-zero status."""

    def __init__(self, command: str, returncode: int):
        self.command = command
        self.returncode = returncode
        self.signal: int | None = -returncode if returncode < 0 else None
        if self.signal is not None:
            detail = f"killed by signal {self.signal}"
        else:
            detail = f"exit code {returncode}"
        super().__init__(f"Command failed ({detail}): {command}")

    @property
    def exit_code(self) -> int:
        """Exit status for the parent process; signal deaths map to 1."""
        return self.returncode if self.returncode > 0 else 1


class RunnerKind(enum.Enum):
    MOCHA = "mocha"
    JEST = "jest"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class SessionConfig:
    configuration: str | None = None
    config_path: str | None = None
    loglevel: str | None = None
    retries: int = 0
    reuse: bool = False
    cleanup: bool = False
    debug_synchronization: float | None = None
    artifacts_location: str | None = None
    record_logs: str | None = None
    take_screenshots: str | None = None
    record_videos: str | None = None
    record_performance: str | None = None
    record_timeline: str | None = None
    device_name: str | None = None
    device_launch_args: str | None = None
    use_custom_logger: bool = True
    force_adb_install: bool = False
    workers: int = 1
    jest_report_specs: bool | None = None
    headless: bool = False
    gpu: str | None = None
    no_color: bool = False
    keep_lock_file: bool = False
    inspect_brk: bool = False

    @property
    def has_multiple_workers(self) -> bool:
        return self.workers != 1


@dataclass(frozen=True)
class RunnerInvocationConfig:
    test_runner: str
    runner_config: str
    specs: str


@dataclass(frozen=True)
class DeviceConfig:
    type: str
    name: str | None = None

    @property
    def platform(self) -> str:
        return self.type.split(".", 1)[0]


@dataclass(frozen=True)
class ForwardedInvocation:
    program: str
    argv: dict[str, ArgValue] = field(default_factory=dict)
    env: dict[str, EnvValue] = field(default_factory=dict)
    specs: tuple[str, ...] = ()
    rerun_index: int = 0

    def with_rerun(self, specs: Sequence[str]) -> "ForwardedInvocation":
        """Copy scoped to *specs*, counted as the next rerun."""
        return replace(self, specs=tuple(specs), rerun_index=self.rerun_index + 1)

    def with_program(self, program: str) -> "ForwardedInvocation":
        return replace(self, program=program)

    def to_json(self) -> dict[str, Any]:
        return {
            "program": self.program,
            "argv": dict(self.argv),
            "env": dict(self.env),
            "specs": list(self.specs),
            "rerun_index": self.rerun_index,
        }
