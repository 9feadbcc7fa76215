from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from typing import Any, Callable, Sequence

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

from detox_cli._logging import setup_logging
from detox_cli.compose import compose_command
from detox_cli.config import DEFAULT_DEBUG_SYNCHRONIZATION_MS, compose_detox_config
from detox_cli.devices import reset_lock_file
from detox_cli.models import ConfigError, ForwardedInvocation, LaunchFailure, RunnerKind
from detox_cli.retry import run_test_runner_with_retries
from detox_cli.runners import require_supported_runner
from detox_cli.store import LastFailedTestsStore, LibraryStore
from detox_cli.translate import choose_translator
from detox_cli.utils import is_bool_text

_cli_log = logging.getLogger("detox.cli")

# argparse dests that are not session options.
_NON_SESSION_DESTS = {"command", "handler", "dry_run", "format"}


def _console() -> Console:
    return Console()


def _split_passthrough(raw_argv: list[str]) -> tuple[list[str], list[str]]:
    """Split at the first bare ``--``; everything after belongs to the runner."""
    if "--" not in raw_argv:
        return raw_argv, []
    index = raw_argv.index("--")
    return raw_argv[:index], raw_argv[index + 1 :]


# Options whose value is optional: (canonical name, accepts next token, const).
_DEBUG_SYNCHRONIZATION = (
    "--debug-synchronization",
    str.isdigit,
    str(DEFAULT_DEBUG_SYNCHRONIZATION_MS),
)
_OPTIONAL_VALUE_OPTIONS: dict[str, tuple[str, Callable[[str], bool], str]] = {
    "-d": _DEBUG_SYNCHRONIZATION,
    "--debug-synchronization": _DEBUG_SYNCHRONIZATION,
    "--jest-report-specs": ("--jest-report-specs", is_bool_text, "true"),
}


def _bind_optional_values(detox_argv: list[str]) -> list[str]:
    """Give bare optional-value flags their default unless the next token fits.

    argparse's ``nargs="?"`` would otherwise take a spec path such as
    ``e2e/Login.test.js`` as the option value.
    """
    bound: list[str] = []
    for index, token in enumerate(detox_argv):
        option = _OPTIONAL_VALUE_OPTIONS.get(token)
        if option is not None:
            name, accepts, const = option
            following = detox_argv[index + 1] if index + 1 < len(detox_argv) else None
            if following is None or not accepts(following):
                bound.append(f"{name}={const}")
                continue
        bound.append(token)
    return bound


def _render_invocation_table(
    invocation: ForwardedInvocation, *, runner: str, platform: str, retries: int
) -> None:
    console = _console()
    summary = Table(title="detox test (dry run)", box=box.SIMPLE_HEAVY)
    summary.add_column("Field", style="bold")
    summary.add_column("Value")
    summary.add_row("runner", runner)
    summary.add_row("platform", platform)
    summary.add_row("retries", str(retries))
    command = compose_command(invocation.program, invocation.argv, invocation.specs)
    summary.add_row("command", Text(command))
    console.print(summary)

    if invocation.env:
        env_table = Table(title="Environment", box=box.SIMPLE)
        env_table.add_column("Variable", style="cyan")
        env_table.add_column("Value")
        for key, value in invocation.env.items():
            env_table.add_row(key, Text(json.dumps(value)))
        console.print(env_table)

    specs_table = Table(title="Specs", box=box.SIMPLE)
    specs_table.add_column("#", justify="right")
    specs_table.add_column("Path")
    for index, spec in enumerate(invocation.specs, 1):
        specs_table.add_row(str(index), Text(spec))
    console.print(specs_table)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="detox", description="Detox end-to-end test command line tools"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    test = sub.add_parser(
        "test",
        allow_abbrev=False,
        help="Run your test suite with the test runner specified in the Detox config",
        description=(
            "Run your test suite with the test runner specified in the Detox "
            "config. Unknown options and arguments after `--` are forwarded "
            "to the test runner."
        ),
    )
    test.add_argument("-C", "--config-path", default=None, help="Detox config file")
    test.add_argument(
        "-c", "--configuration", default=None, help="Device configuration name"
    )
    test.add_argument(
        "-o", "--runner-config", default=None, help="Test runner config file"
    )
    test.add_argument(
        "-l",
        "--loglevel",
        default=None,
        choices=["fatal", "error", "warn", "info", "verbose", "trace"],
    )
    test.add_argument(
        "--no-color", dest="no_color", action="store_true", default=None
    )
    test.add_argument(
        "-R",
        "--retries",
        type=int,
        default=None,
        help="Re-run failed spec files up to N times (Jest only)",
    )
    test.add_argument("-r", "--reuse", action="store_true", default=None)
    test.add_argument("-u", "--cleanup", action="store_true", default=None)
    test.add_argument(
        "-d",
        "--debug-synchronization",
        nargs="?",
        type=int,
        const=DEFAULT_DEBUG_SYNCHRONIZATION_MS,
        default=None,
        help="Log app synchronization status every N ms (default 3000)",
    )
    test.add_argument("-a", "--artifacts-location", default=None)
    test.add_argument("--record-logs", default=None, choices=["failing", "all", "none"])
    test.add_argument(
        "--take-screenshots", default=None, choices=["manual", "failing", "all", "none"]
    )
    test.add_argument(
        "--record-videos", default=None, choices=["failing", "all", "none"]
    )
    test.add_argument("--record-performance", default=None, choices=["all", "none"])
    test.add_argument("--record-timeline", default=None, choices=["all", "none"])
    test.add_argument(
        "-w", "--workers", type=int, default=None, help="Number of runner workers"
    )
    test.add_argument(
        "--jest-report-specs",
        nargs="?",
        const="true",
        default=None,
        help="Report each spec in progress (true/false)",
    )
    test.add_argument("-H", "--headless", action="store_true", default=None)
    test.add_argument("--gpu", default=None, help="Android emulator GPU mode")
    test.add_argument("--device-launch-args", default=None)
    test.add_argument(
        "--use-custom-logger",
        action=argparse.BooleanOptionalAction,
        default=None,
    )
    test.add_argument("--force-adb-install", action="store_true", default=None)
    test.add_argument("-n", "--device-name", default=None)
    test.add_argument(
        "--keepLockFile",
        dest="keep_lock_file",
        action="store_true",
        default=None,
        help="Keep the device lock file between runs",
    )
    test.add_argument(
        "--inspect-brk",
        action="store_true",
        default=None,
        help="Launch the runner under `node --inspect-brk`",
    )
    test.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the translated runner invocation without launching it",
    )
    test.add_argument("--format", choices=["table", "json"], default="table")
    test.set_defaults(handler=_cmd_test)
    return parser


def _cmd_test(args: argparse.Namespace, runner_args: list[str]) -> int:
    cli_values = {
        key: value
        for key, value in vars(args).items()
        if key not in _NON_SESSION_DESTS
    }
    composed = compose_detox_config(cli_values)
    session = composed.session
    platform = composed.device.platform

    setup_logging(session.loglevel)

    test_runner = composed.runner.test_runner
    kind = require_supported_runner(test_runner)
    translate = choose_translator(kind, session, platform)
    invocation = translate(session, composed.runner, runner_args, platform)
    if session.inspect_brk:
        invocation = invocation.with_program(f"node --inspect-brk {test_runner}")

    retries = session.retries if kind is RunnerKind.JEST else 0

    if args.dry_run:
        if args.format == "json":
            payload: dict[str, Any] = {
                "runner": kind.value,
                "platform": platform,
                "retries": retries,
                "config_path": str(composed.config_path),
                "invocation": invocation.to_json(),
            }
            print(json.dumps(payload, indent=2, sort_keys=True))
        else:
            _render_invocation_table(
                invocation, runner=kind.value, platform=platform, retries=retries
            )
        return 0

    library = LibraryStore()
    if not session.keep_lock_file:
        reset_lock_file(platform, library)

    run_test_runner_with_retries(
        invocation,
        retries,
        store=LastFailedTestsStore.for_library(library),
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    setup_logging()
    parser = _build_parser()
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    detox_argv, explicit_passthrough = _split_passthrough(raw_argv)
    args, unknown = parser.parse_known_args(_bind_optional_values(detox_argv))
    runner_args = [*unknown, *explicit_passthrough]
    command = str(getattr(args, "command", "unknown"))
    argv_text = " ".join(raw_argv)
    started = time.perf_counter()
    _cli_log.debug("cli_command_start command=%s argv=%s", command, argv_text)

    exit_code = 1
    try:
        exit_code = int(args.handler(args, runner_args))
    except ConfigError as exc:
        _cli_log.debug(
            "cli_command_error command=%s kind=config error=%s", command, exc.message
        )
        print(f"[config error] {exc}", file=sys.stderr)
        exit_code = 2
    except LaunchFailure as exc:
        _cli_log.debug(
            "cli_command_error command=%s kind=launch exit=%s signal=%s",
            command,
            exc.returncode,
            exc.signal,
        )
        print(f"[test failure] {exc}", file=sys.stderr)
        exit_code = exc.exit_code
    except KeyboardInterrupt:
        _cli_log.error("cli_command_error command=%s kind=interrupted", command)
        print("\n[interrupted]", file=sys.stderr)
        exit_code = 130
    except RuntimeError as exc:
        _cli_log.error(
            "cli_command_error command=%s kind=runtime error=%s", command, exc
        )
        print(f"[runtime error] {exc}", file=sys.stderr)
        exit_code = 1
    except (OSError, json.JSONDecodeError, KeyError, ValueError) as exc:
        _cli_log.error(
            "cli_command_error command=%s kind=%s error=%s",
            command,
            type(exc).__name__,
            exc,
        )
        print(f"[error] {type(exc).__name__}: {exc}", file=sys.stderr)
        exit_code = 1
    finally:
        duration_sec = time.perf_counter() - started
        _cli_log.debug(
            "cli_command_end command=%s exit_code=%s duration_sec=%.3f",
            command,
            exit_code,
            duration_sec,
        )

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
