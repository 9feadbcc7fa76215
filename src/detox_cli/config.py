"""Configuration loading for ``detox test``.

The Detox config file provides the runner and device configurations; the
session options come from the command line, falling back to ``DETOX_*``
environment variables.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from detox_cli.models import (
    ConfigError,
    DeviceConfig,
    RunnerInvocationConfig,
    RunnerKind,
    SessionConfig,
)
from detox_cli.runners import detect_runner
from detox_cli.utils import is_finite_number, parse_bool

CONFIG_FILE_CANDIDATES = (
    ".detoxrc.json",
    ".detoxrc.yaml",
    ".detoxrc.yml",
    ".detoxrc",
    "package.json",
)
DEFAULT_TEST_RUNNER = "mocha"
DEFAULT_SPECS = "e2e"
DEFAULT_RUNNER_CONFIGS = {
    RunnerKind.MOCHA: "e2e/mocha.opts",
    RunnerKind.JEST: "e2e/config.json",
}
DEFAULT_DEBUG_SYNCHRONIZATION_MS = 3000

_BOOL_FIELDS = {
    "reuse",
    "cleanup",
    "use_custom_logger",
    "force_adb_install",
    "headless",
    "no_color",
    "keep_lock_file",
    "inspect_brk",
}
_INT_FIELDS = {"retries", "workers"}


@dataclass(frozen=True)
class ComposedConfig:
    config_path: Path
    session: SessionConfig
    runner: RunnerInvocationConfig
    device: DeviceConfig


def _require_mapping(value: Any, *, label: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigError(f"{label} must be a mapping")
    return {str(k): v for k, v in value.items()}


def _coerce_optional_str(value: Any, *, label: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{label} must be a string")
    trimmed = value.strip()
    return trimmed or None


def _coerce_int(value: Any, *, label: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{label} must be an integer")
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"{label} must be an integer, got {value!r}") from exc


def _coerce_number(value: Any, *, label: str) -> float | int:
    if is_finite_number(value):
        return value
    try:
        number = float(str(value).strip())
    except ValueError as exc:
        raise ConfigError(f"{label} must be a number, got {value!r}") from exc
    return int(number) if number.is_integer() else number


def _parse_config_text(path: Path) -> Any:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        return yaml.safe_load(text)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        if path.suffix == ".json":
            raise ConfigError(f"Invalid JSON in Detox config {path}: {exc}") from exc
    # Extensionless .detoxrc may hold either format; YAML is a JSON superset.
    return yaml.safe_load(text)


def load_config_file(path: Path) -> dict[str, Any]:
    """Read the Detox section of *path* (``package.json`` keeps it under ``detox``)."""
    try:
        loaded = _parse_config_text(path)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in Detox config {path}: {exc}") from exc
    if loaded is None:
        loaded = {}
    if path.name == "package.json":
        if not isinstance(loaded, dict) or "detox" not in loaded:
            raise ConfigError(f"No 'detox' section in {path}")
        loaded = loaded["detox"]
    return _require_mapping(loaded, label=f"Detox config root in {path}")


def find_config_file(explicit: str | None, *, cwd: Path | None = None) -> Path:
    base = Path.cwd() if cwd is None else Path(cwd)
    if explicit:
        path = Path(explicit).expanduser()
        if not path.is_absolute():
            path = base / path
        path = path.resolve()
        if not path.exists():
            raise ConfigError(f"Detox config file not found: {path}")
        return path

    for name in CONFIG_FILE_CANDIDATES:
        candidate = base / name
        if not candidate.exists():
            continue
        if name == "package.json":
            payload = json.loads(candidate.read_text(encoding="utf-8"))
            if not isinstance(payload, dict) or "detox" not in payload:
                continue
        return candidate.resolve()

    raise ConfigError(
        f"Cannot find Detox config in {base}.",
        hint="Create a .detoxrc.json file or pass --config-path <path>.",
    )


def _select_device_config(
    configurations: Mapping[str, Any], name: str | None, *, source: Path
) -> tuple[str, DeviceConfig]:
    if not configurations:
        raise ConfigError(f"No configurations are defined in {source}")
    if name is None:
        if len(configurations) > 1:
            names = ", ".join(sorted(configurations))
            raise ConfigError(
                f"Cannot determine which configuration to use from {source}.",
                hint=f"Use --configuration to choose one of: {names}",
            )
        name = next(iter(configurations))
    if name not in configurations:
        names = ", ".join(sorted(configurations))
        raise ConfigError(
            f"Cannot find configuration '{name}' in {source}.",
            hint=f"Available configurations: {names}",
        )

    label = f"configurations.{name}"
    raw = _require_mapping(configurations[name], label=label)
    device_type = _coerce_optional_str(raw.get("type"), label=f"{label}.type")
    if device_type is None:
        raise ConfigError(f"{label}.type is required in {source}")
    device_name = raw.get("device", raw.get("name"))
    if isinstance(device_name, dict):
        device_name = device_name.get("type") or device_name.get("avdName")
    return name, DeviceConfig(
        type=device_type,
        name=_coerce_optional_str(device_name, label=f"{label}.device"),
    )


def _option_value(
    name: str, cli_values: Mapping[str, Any], environ: Mapping[str, str]
) -> Any:
    value = cli_values.get(name)
    if value is not None:
        return value
    return environ.get(f"DETOX_{name.upper()}")


def compose_session_config(
    cli_values: Mapping[str, Any],
    *,
    environ: Mapping[str, str] | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> SessionConfig:
    """Build the session options, CLI first, then ``DETOX_*`` env, then *defaults*."""
    env = os.environ if environ is None else environ
    resolved: dict[str, Any] = {}
    for spec in fields(SessionConfig):
        name = spec.name
        value = _option_value(name, cli_values, env)
        if value is None and defaults is not None:
            value = defaults.get(name)
        if value is None:
            continue

        label = f"--{name.replace('_', '-')}"
        if name in _BOOL_FIELDS or name == "jest_report_specs":
            resolved[name] = parse_bool(value, label=label)
        elif name in _INT_FIELDS:
            resolved[name] = _coerce_int(value, label=label)
        elif name == "debug_synchronization":
            resolved[name] = _coerce_number(value, label=label)
        else:
            resolved[name] = str(value)

    if resolved.get("retries", 0) < 0:
        raise ConfigError("--retries must be >= 0")
    if resolved.get("workers", 1) < 1:
        raise ConfigError("--workers must be >= 1")
    return SessionConfig(**resolved)


def compose_detox_config(
    cli_values: Mapping[str, Any],
    *,
    cwd: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> ComposedConfig:
    env = os.environ if environ is None else environ
    config_path = find_config_file(
        _option_value("config_path", cli_values, env), cwd=cwd
    )
    raw = load_config_file(config_path)

    test_runner = _coerce_optional_str(raw.get("testRunner"), label="testRunner")
    test_runner = test_runner or DEFAULT_TEST_RUNNER
    runner_config = _coerce_optional_str(
        cli_values.get("runner_config"), label="--runner-config"
    ) or _coerce_optional_str(raw.get("runnerConfig"), label="runnerConfig")
    if runner_config is None:
        runner_config = DEFAULT_RUNNER_CONFIGS.get(detect_runner(test_runner), "")
    specs = _coerce_optional_str(raw.get("specs"), label="specs") or DEFAULT_SPECS

    configurations = _require_mapping(
        raw.get("configurations") or {}, label="configurations"
    )
    configuration, device = _select_device_config(
        configurations,
        _coerce_optional_str(
            _option_value("configuration", cli_values, env), label="--configuration"
        ),
        source=config_path,
    )

    session = compose_session_config(
        cli_values,
        environ=env,
        defaults={"configuration": configuration},
    )
    return ComposedConfig(
        config_path=config_path,
        session=session,
        runner=RunnerInvocationConfig(
            test_runner=test_runner,
            runner_config=runner_config,
            specs=specs,
        ),
        device=device,
    )
