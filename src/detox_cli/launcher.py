from __future__ import annotations

import logging
import os
import subprocess
from typing import Mapping

from detox_cli.compose import compose_command, format_env_prefix
from detox_cli.models import ForwardedInvocation, LaunchFailure
from detox_cli.utils import stringify_env_value

_log = logging.getLogger("detox.launcher")

RERUN_INDEX_ENV = "DETOX_RERUN_INDEX"


def invocation_env_overlay(invocation: ForwardedInvocation) -> dict[str, str]:
    """Variables the launch adds on top of the inherited environment."""
    overlay = {
        key: stringify_env_value(value)
        for key, value in invocation.env.items()
        if value is not None
    }
    if invocation.rerun_index > 0:
        overlay[RERUN_INDEX_ENV] = str(invocation.rerun_index)
    return overlay


def launch_test_runner(
    invocation: ForwardedInvocation,
    *,
    base_env: Mapping[str, str] | None = None,
) -> None:
    """Run the runner command to completion with the terminal attached.

    Raises :class:`LaunchFailure` when the command exits non-zero.
    """
    command = compose_command(invocation.program, invocation.argv, invocation.specs)
    overlay = invocation_env_overlay(invocation)

    child_env = dict(os.environ if base_env is None else base_env)
    # A rerun index inherited from the caller must not mark attempt 0 as a rerun.
    child_env.pop(RERUN_INDEX_ENV, None)
    child_env.update(overlay)

    _log.info("%s%s", format_env_prefix(overlay), command)

    completed = subprocess.run(command, shell=True, env=child_env, check=False)
    if completed.returncode != 0:
        raise LaunchFailure(command, completed.returncode)
