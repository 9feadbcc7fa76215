from __future__ import annotations

from typing import Sequence

from detox_cli.models import ArgValue, ConfigError, RunnerKind

_RUNNER_PROGRAMS: tuple[tuple[str, RunnerKind], ...] = (
    ("mocha", RunnerKind.MOCHA),
    ("jest", RunnerKind.JEST),
)

# Flags that never consume the following token, so `--debug e2e/a.test.js`
# splits into a flag and a spec path.
_BOOLEAN_FLAGS: dict[RunnerKind, frozenset[str]] = {
    RunnerKind.MOCHA: frozenset(
        {
            "A",
            "allow-uncaught",
            "async-only",
            "b",
            "bail",
            "c",
            "check-leaks",
            "color",
            "colors",
            "delay",
            "diff",
            "exit",
            "forbid-only",
            "forbid-pending",
            "full-trace",
            "i",
            "inline-diffs",
            "invert",
            "list-interfaces",
            "list-reporters",
            "p",
            "parallel",
            "recursive",
            "S",
            "sort",
            "w",
            "watch",
        }
    ),
    RunnerKind.JEST: frozenset(
        {
            "all",
            "automock",
            "b",
            "bail",
            "cache",
            "changedFilesWithAncestor",
            "ci",
            "clearCache",
            "clearMocks",
            "collectCoverage",
            "coverage",
            "debug",
            "detectLeaks",
            "detectOpenHandles",
            "e",
            "errorOnDeprecated",
            "expand",
            "forceExit",
            "i",
            "json",
            "lastCommit",
            "listTests",
            "logHeapUsage",
            "noStackTrace",
            "o",
            "onlyChanged",
            "onlyFailures",
            "passWithNoTests",
            "resetMocks",
            "resetModules",
            "restoreMocks",
            "runInBand",
            "showConfig",
            "silent",
            "useStderr",
            "verbose",
            "watch",
            "watchAll",
        }
    ),
}


def detect_runner(command: str) -> RunnerKind:
    for program, kind in _RUNNER_PROGRAMS:
        if program in command:
            return kind
    return RunnerKind.UNKNOWN


def require_supported_runner(command: str) -> RunnerKind:
    kind = detect_runner(command)
    if kind is RunnerKind.UNKNOWN:
        raise ConfigError(
            f'"{command}" is not supported in Detox CLI tools.',
            hint="You can still run your tests with the runner's own CLI tool",
        )
    return kind


def _store(passthrough: dict[str, ArgValue], key: str, value: ArgValue) -> None:
    if key not in passthrough:
        passthrough[key] = value
        return
    existing = passthrough[key]
    if isinstance(existing, list):
        existing.append(value)
    else:
        passthrough[key] = [existing, value]


def split_runner_args(
    kind: RunnerKind, tokens: Sequence[str]
) -> tuple[list[str], dict[str, ArgValue]]:
    """Separate spec paths from the flags meant for the runner CLI.

    Returns ``(specs, passthrough)``: positional tokens become specs in their
    original order, flags become a key -> value map keyed by the flag name
    without its dashes.
    """
    boolean_flags = _BOOLEAN_FLAGS.get(kind, frozenset())
    specs: list[str] = []
    passthrough: dict[str, ArgValue] = {}

    items = list(tokens)
    index = 0
    while index < len(items):
        token = items[index]
        index += 1

        if token == "--":
            specs.extend(items[index:])
            break
        if not token.startswith("-") or token == "-":
            specs.append(token)
            continue

        name = token.lstrip("-")
        if "=" in name:
            key, value = name.split("=", 1)
            _store(passthrough, key, value)
            continue
        if token.startswith("--no-") and len(name) > 3:
            _store(passthrough, name[3:], False)
            continue
        if name in boolean_flags:
            _store(passthrough, name, True)
            continue
        if index < len(items) and not items[index].startswith("-"):
            _store(passthrough, name, items[index])
            index += 1
            continue
        _store(passthrough, name, True)

    return specs, passthrough
