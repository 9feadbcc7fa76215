from __future__ import annotations

import json
import logging
import math
import time
from pathlib import Path
from typing import Any

from detox_cli.models import ConfigError

_log = logging.getLogger("detox.utils")

_TRUE_TEXT = {"true", "1", "yes", "on"}
_FALSE_TEXT = {"false", "0", "no", "off"}


def stable_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def epoch_millis() -> int:
    return int(time.time() * 1000)


def is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def is_bool_text(value: str) -> bool:
    return value.strip().lower() in _TRUE_TEXT | _FALSE_TEXT


def parse_bool(value: Any, *, label: str) -> bool:
    """Strictly parse a boolean option value.

    Accepts real booleans and the usual textual spellings; anything else is
    rejected instead of being coerced.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_TEXT:
        return True
    if text in _FALSE_TEXT:
        return False
    raise ConfigError(
        f"{label} must be a boolean (true/false), got {value!r}",
    )


def camel_case(snake: str) -> str:
    head, *rest = snake.split("_")
    return head + "".join(part.capitalize() for part in rest)


def stringify_env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(path)
    except Exception:
        # Clean up the temp file so we don't leave partial writes on disk.
        try:
            tmp.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def read_json_file(path: Path) -> Any | None:
    """Load JSON from *path*; missing, empty or corrupt files yield None."""
    if not path.exists():
        return None
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        _log.warning("Skipping corrupt JSON file %s", path)
        return None
