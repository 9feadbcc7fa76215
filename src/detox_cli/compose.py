from __future__ import annotations

import shlex
from typing import Any, Mapping, Sequence

from detox_cli.utils import stringify_env_value


def _flag_name(key: str) -> str:
    return f"-{key}" if len(key) == 1 else f"--{key}"


def _render_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return shlex.quote(str(value))


def unparse_args(argv: Mapping[str, Any]) -> list[str]:
    """Render an argument map as CLI tokens, already shell-quoted.

    ``True`` is a bare flag, ``False`` its ``--no-`` form, a list repeats the
    flag per item and ``None`` is skipped.
    """
    tokens: list[str] = []
    for key, value in argv.items():
        if value is None:
            continue
        if value is True:
            tokens.append(_flag_name(key))
        elif value is False:
            tokens.append(f"--no-{key}")
        elif isinstance(value, (list, tuple)):
            for item in value:
                tokens.extend(unparse_args({key: item}))
        else:
            tokens.extend([_flag_name(key), _render_value(value)])
    return tokens


def compose_command(program: str, argv: Mapping[str, Any], specs: Sequence[str]) -> str:
    # The program may carry its own arguments (e.g. `node --inspect-brk jest`),
    # so it is emitted verbatim.
    parts = [program, *unparse_args(argv), *(shlex.quote(spec) for spec in specs)]
    return " ".join(part for part in parts if part)


def format_env_prefix(env: Mapping[str, Any]) -> str:
    """``KEY=value `` pairs in the form a shell would accept before a command."""
    rendered = [
        f"{key}={shlex.quote(stringify_env_value(value))} "
        for key, value in env.items()
        if value is not None
    ]
    return "".join(rendered)
