from __future__ import annotations

import logging
from pathlib import Path

from detox_cli.store import LibraryStore
from detox_cli.utils import atomic_write_text

_log = logging.getLogger("detox.devices")


def lock_file_path(platform: str, library: LibraryStore) -> Path | None:
    if platform == "ios":
        return library.ios_lock_file_path
    if platform == "android":
        return library.android_lock_file_path
    return None


def reset_lock_file(platform: str, library: LibraryStore | None = None) -> Path | None:
    """Clear the device registry lock file of *platform*.

    Returns the path that was reset, or None for platforms without one.
    """
    path = lock_file_path(platform, library or LibraryStore())
    if path is None:
        _log.debug("No device lock file for platform=%s", platform)
        return None
    atomic_write_text(path, "[]")
    _log.debug("Reset device lock file path=%s", path)
    return path
