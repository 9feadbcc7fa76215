from __future__ import annotations

import json
import math
from pathlib import Path

import pytest

from detox_cli.config import (
    compose_detox_config,
    compose_session_config,
    find_config_file,
    load_config_file,
)
from detox_cli.models import ConfigError


def _write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content.strip() + "\n", encoding="utf-8")


def _write_json(path: Path, payload: object) -> None:
    _write(path, json.dumps(payload))


_IOS_ONLY = {
    "testRunner": "jest",
    "configurations": {"ios.sim": {"type": "ios.simulator", "device": "iPhone 11"}},
}


def test_find_config_prefers_detoxrc_over_package_json(tmp_path: Path) -> None:
    _write_json(tmp_path / "package.json", {"name": "app", "detox": _IOS_ONLY})
    _write_json(tmp_path / ".detoxrc.json", _IOS_ONLY)

    expected = (tmp_path / ".detoxrc.json").resolve()
    assert find_config_file(None, cwd=tmp_path) == expected


def test_find_config_skips_package_json_without_detox_section(tmp_path: Path) -> None:
    _write_json(tmp_path / "package.json", {"name": "app"})

    with pytest.raises(ConfigError, match="Cannot find Detox config"):
        find_config_file(None, cwd=tmp_path)


def test_explicit_missing_config_path_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="not found"):
        find_config_file("missing.json", cwd=tmp_path)


def test_yaml_and_package_json_configs_load(tmp_path: Path) -> None:
    _write(
        tmp_path / ".detoxrc.yaml",
        """
testRunner: jest
runnerConfig: e2e/jest.config.js
configurations:
  android.emu:
    type: android.emulator
    device:
      avdName: Pixel_API_28
""",
    )
    _write_json(tmp_path / "package.json", {"detox": {"testRunner": "mocha"}})

    assert load_config_file(tmp_path / ".detoxrc.yaml")["runnerConfig"] == (
        "e2e/jest.config.js"
    )
    assert load_config_file(tmp_path / "package.json") == {"testRunner": "mocha"}


def test_compose_applies_runner_defaults(tmp_path: Path) -> None:
    _write_json(
        tmp_path / ".detoxrc.json",
        {"configurations": {"ios.sim": {"type": "ios.simulator"}}},
    )

    composed = compose_detox_config({}, cwd=tmp_path, environ={})

    assert composed.runner.test_runner == "mocha"
    assert composed.runner.runner_config == "e2e/mocha.opts"
    assert composed.runner.specs == "e2e"
    assert composed.device.platform == "ios"
    assert composed.session.configuration == "ios.sim"
    assert composed.session.config_path is None


def test_compose_jest_defaults_and_cli_runner_config(tmp_path: Path) -> None:
    _write_json(tmp_path / ".detoxrc.json", _IOS_ONLY)

    default = compose_detox_config({}, cwd=tmp_path, environ={})
    overridden = compose_detox_config(
        {"runner_config": "e2e/custom.json"}, cwd=tmp_path, environ={}
    )

    assert default.runner.runner_config == "e2e/config.json"
    assert overridden.runner.runner_config == "e2e/custom.json"
    assert default.device.name == "iPhone 11"


def test_compose_requires_configuration_choice_when_ambiguous(tmp_path: Path) -> None:
    _write_json(
        tmp_path / ".detoxrc.json",
        {
            "configurations": {
                "ios.sim": {"type": "ios.simulator"},
                "android.emu": {"type": "android.emulator"},
            }
        },
    )

    with pytest.raises(ConfigError) as excinfo:
        compose_detox_config({}, cwd=tmp_path, environ={})
    assert "android.emu, ios.sim" in str(excinfo.value)

    chosen = compose_detox_config(
        {"configuration": "android.emu"}, cwd=tmp_path, environ={}
    )
    assert chosen.device.platform == "android"

    with pytest.raises(ConfigError, match="Cannot find configuration 'web'"):
        compose_detox_config({"configuration": "web"}, cwd=tmp_path, environ={})


def test_session_options_fall_back_to_detox_env() -> None:
    session = compose_session_config(
        {"workers": None, "loglevel": "warn"},
        environ={
            "DETOX_WORKERS": "3",
            "DETOX_LOGLEVEL": "trace",
            "DETOX_HEADLESS": "true",
            "DETOX_DEBUG_SYNCHRONIZATION": "250",
        },
    )

    assert session.workers == 3
    assert session.loglevel == "warn"
    assert session.headless is True
    assert session.debug_synchronization == 250


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("true", True), ("FALSE", False), ("1", True), ("no", False), (True, True)],
)
def test_jest_report_specs_parses_strictly(raw: object, expected: bool) -> None:
    session = compose_session_config({"jest_report_specs": raw}, environ={})
    assert session.jest_report_specs is expected


def test_jest_report_specs_rejects_arbitrary_text() -> None:
    with pytest.raises(ConfigError, match="--jest-report-specs must be a boolean"):
        compose_session_config({"jest_report_specs": "sometimes"}, environ={})


def test_invalid_numbers_are_rejected() -> None:
    with pytest.raises(ConfigError, match="--workers must be an integer"):
        compose_session_config({}, environ={"DETOX_WORKERS": "many"})
    with pytest.raises(ConfigError, match="--retries must be >= 0"):
        compose_session_config({"retries": -1}, environ={})
    with pytest.raises(ConfigError, match="--workers must be >= 1"):
        compose_session_config({"workers": 0}, environ={})


def test_non_finite_debug_synchronization_is_kept_for_translation() -> None:
    session = compose_session_config(
        {}, environ={"DETOX_DEBUG_SYNCHRONIZATION": "nan"}
    )
    assert math.isnan(session.debug_synchronization)
