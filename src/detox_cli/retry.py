from __future__ import annotations

import logging
from typing import Callable

from detox_cli.launcher import launch_test_runner
from detox_cli.models import ForwardedInvocation, LaunchFailure
from detox_cli.store import FailedSpecsStore

_log = logging.getLogger("detox.retry")

Launcher = Callable[[ForwardedInvocation], None]


def _format_failed_specs(specs: list[str]) -> str:
    return "\n".join(f"{index}. {spec}" for index, spec in enumerate(specs, 1))


def run_test_runner_with_retries(
    invocation: ForwardedInvocation,
    retries: int,
    *,
    store: FailedSpecsStore,
    launcher: Launcher = launch_test_runner,
) -> ForwardedInvocation:
    """Launch the runner, rerunning only the failed specs up to *retries* times.

    Returns the invocation of the successful attempt. When a failure cannot be
    retried (no failed specs recorded, or the budget is spent) the last
    :class:`LaunchFailure` propagates unchanged.
    """
    if retries < 0:
        raise ValueError("retries must be >= 0")

    runs_left = 1 + retries
    current = invocation
    while True:
        store.reset()
        try:
            launcher(current)
            return current
        except LaunchFailure:
            failed_specs = store.load()
            if not failed_specs:
                raise

            runs_left -= 1
            current = current.with_rerun(failed_specs)
            _log.error(
                "Test run has failed for the following specs:\n%s\n",
                _format_failed_specs(list(failed_specs)),
            )
            if runs_left <= 0:
                raise

        _log.error("Re-running tests for the failed specs...\n")
