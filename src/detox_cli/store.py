from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Protocol

from detox_cli.utils import atomic_write_text, read_json_file, stable_json

_log = logging.getLogger("detox.store")

LIBRARY_ROOT_ENV = "DETOX_LIBRARY_ROOT_PATH"


def default_library_root() -> Path:
    raw = os.environ.get(LIBRARY_ROOT_ENV, "").strip()
    if raw:
        return Path(raw).expanduser().resolve()
    return Path.home() / "Library" / "Detox"


class LibraryStore:
    """Paths of the per-user Detox state shared between CLI and runners."""

    def __init__(self, root: Path | None = None):
        self.root = Path(root) if root is not None else default_library_root()

    @property
    def ios_lock_file_path(self) -> Path:
        return self.root / "device.registry.state.lock"

    @property
    def android_lock_file_path(self) -> Path:
        return self.root / "android.device.registry.state.lock"

    @property
    def last_failed_tests_path(self) -> Path:
        return self.root / "last-failed.json"


class FailedSpecsStore(Protocol):
    def load(self) -> list[str] | None: ...

    def reset(self) -> None: ...


class LastFailedTestsStore:
    """Spec files that failed in the most recent runner attempt.

    The runner side records failures with :meth:`save`; the CLI only reads
    them after a failed launch.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def for_library(cls, library: LibraryStore) -> "LastFailedTestsStore":
        return cls(library.last_failed_tests_path)

    def load(self) -> list[str] | None:
        payload = read_json_file(self.path)
        if payload is None:
            return None
        if not isinstance(payload, list):
            _log.warning(
                "Ignoring failed specs record %s: expected a JSON array", self.path
            )
            return None
        specs = [str(item) for item in payload if str(item).strip()]
        return specs or None

    def save(self, specs: Iterable[str]) -> None:
        atomic_write_text(self.path, stable_json([str(x) for x in specs]) + "\n")

    def reset(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
