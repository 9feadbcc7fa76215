"""Translation of a session configuration into a runner's own vocabulary.

Both translators share one signature and return a :class:`ForwardedInvocation`
whose maps hold no ``None`` values; keys that do not apply to the runner or
platform are simply absent.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from detox_cli.models import (
    ArgValue,
    ConfigError,
    EnvValue,
    ForwardedInvocation,
    RunnerInvocationConfig,
    RunnerKind,
    SessionConfig,
)
from detox_cli.runners import split_runner_args
from detox_cli.utils import camel_case, epoch_millis, is_finite_number

_log = logging.getLogger("detox.translate")

START_TIMESTAMP_ENV = "DETOX_START_TIMESTAMP"

# Session fields forwarded to jest as environment variables, in this order.
# Each is exported under its camelCase name.
_JEST_ENV_FIELDS = (
    "config_path",
    "configuration",
    "loglevel",
    "cleanup",
    "reuse",
    "debug_synchronization",
    "gpu",
    "headless",
    "artifacts_location",
    "record_logs",
    "take_screenshots",
    "record_videos",
    "record_performance",
    "record_timeline",
    "device_name",
    "device_launch_args",
    "use_custom_logger",
)


class Translator(Protocol):
    def __call__(
        self,
        session: SessionConfig,
        runner_config: RunnerInvocationConfig,
        runner_args: Sequence[str],
        platform: str,
        *,
        start_timestamp: int | None = None,
    ) -> ForwardedInvocation: ...


def platform_filter(platform: str) -> str | None:
    """Tag of the tests that must not run on *platform*."""
    if platform == "ios":
        return ":android:"
    if platform == "android":
        return ":ios:"
    return None


def _compact(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def _flag(value: bool) -> bool | None:
    return True if value else None


def _text(value: Any) -> Any:
    if value is None or value == "":
        return None
    return value


def _finite(value: Any) -> Any:
    return value if is_finite_number(value) else None


def _resolve_specs(
    explicit: list[str], runner_config: RunnerInvocationConfig
) -> tuple[str, ...]:
    if explicit:
        return tuple(explicit)
    return (runner_config.specs,)


def translate_mocha_args(
    session: SessionConfig,
    runner_config: RunnerInvocationConfig,
    runner_args: Sequence[str],
    platform: str,
    *,
    start_timestamp: int | None = None,
) -> ForwardedInvocation:
    specs, passthrough = split_runner_args(RunnerKind.MOCHA, runner_args)
    config_param = (
        "opts" if Path(runner_config.runner_config).suffix == ".opts" else "config"
    )
    grep = platform_filter(platform)

    argv: dict[str, ArgValue] = _compact(
        {
            config_param: _text(runner_config.runner_config),
            "cleanup": _flag(session.cleanup),
            "colors": False if session.no_color else None,
            "configuration": _text(session.configuration),
            "gpu": _text(session.gpu),
            "grep": grep,
            "invert": _flag(grep is not None),
            "headless": _flag(session.headless),
            "loglevel": _text(session.loglevel),
            "reuse": _flag(session.reuse),
            "artifacts-location": _text(session.artifacts_location),
            "config-path": _text(session.config_path),
            "debug-synchronization": _finite(session.debug_synchronization),
            "device-name": _text(session.device_name),
            "force-adb-install": _flag(
                platform == "android" and session.force_adb_install
            ),
            "record-logs": _text(session.record_logs),
            "record-performance": _text(session.record_performance),
            "record-videos": _text(session.record_videos),
            "take-screenshots": _text(session.take_screenshots),
            "use-custom-logger": "true" if session.use_custom_logger else None,
        }
    )
    argv.update(passthrough)

    env: dict[str, EnvValue] = _compact(
        {"deviceLaunchArgs": _text(session.device_launch_args)}
    )

    return ForwardedInvocation(
        program=runner_config.test_runner,
        argv=argv,
        env=env,
        specs=_resolve_specs(specs, runner_config),
    )


def translate_jest_args(
    session: SessionConfig,
    runner_config: RunnerInvocationConfig,
    runner_args: Sequence[str],
    platform: str,
    *,
    start_timestamp: int | None = None,
) -> ForwardedInvocation:
    specs, passthrough = split_runner_args(RunnerKind.JEST, runner_args)
    exclude = platform_filter(platform)

    argv: dict[str, ArgValue] = _compact(
        {
            "color": False if session.no_color else None,
            "config": _text(runner_config.runner_config),
            "testNamePattern": f"^((?!{exclude}).)*$" if exclude else None,
            "maxWorkers": _finite(session.workers),
        }
    )
    argv.update(passthrough)

    picked: dict[str, Any] = {}
    for name in _JEST_ENV_FIELDS:
        value = getattr(session, name)
        if isinstance(value, bool):
            value = _flag(value)
        elif name == "debug_synchronization":
            value = _finite(value)
        else:
            value = _text(value)
        picked[camel_case(name)] = value
    if platform == "android":
        picked["forceAdbInstall"] = _flag(session.force_adb_install)

    if session.jest_report_specs is None:
        report_specs = not session.has_multiple_workers
    else:
        report_specs = session.jest_report_specs

    env: dict[str, EnvValue] = _compact(
        {
            **picked,
            START_TIMESTAMP_ENV: (
                epoch_millis() if start_timestamp is None else start_timestamp
            ),
            "readOnlyEmu": (
                session.has_multiple_workers if platform == "android" else None
            ),
            "reportSpecs": report_specs,
        }
    )

    return ForwardedInvocation(
        program=runner_config.test_runner,
        argv=argv,
        env=env,
        specs=_resolve_specs(specs, runner_config),
    )


def _warn_mocha_unsupported(session: SessionConfig) -> None:
    if session.has_multiple_workers:
        _log.warning(
            "Cannot use -w, --workers. Parallel test execution is only supported with iOS and Jest"
        )
    if session.retries > 0:
        _log.warning(
            "Cannot use -R, --retries. The test retry mechanism is only supported with Jest runner"
        )
    if session.record_timeline:
        _log.warning(
            "Cannot use --record-timeline. This artifact type is only supported with Jest runner"
        )


def choose_translator(
    kind: RunnerKind, session: SessionConfig, platform: str
) -> Translator:
    """Pick the translator for *kind*, warning about options it cannot honor."""
    if kind is RunnerKind.MOCHA:
        _warn_mocha_unsupported(session)
        return translate_mocha_args

    if kind is RunnerKind.JEST:
        if platform == "android" and session.has_multiple_workers:
            _log.warning(
                "Multiple workers is an experimental feature on Android and requires "
                "an emulator binary of version 28.0.16 or higher. Check your version by "
                "running: $ANDROID_HOME/tools/bin/sdkmanager --list"
            )
        return translate_jest_args

    raise ConfigError(
        f'"{kind.value}" runner is not supported in Detox CLI tools.',
        hint="You can still run your tests with the runner's own CLI tool",
    )
