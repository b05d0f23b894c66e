"""
Backend binary resolution.

Looks a binary up on PATH first, then in the places npm, yarn, pipx and
Homebrew commonly install CLIs to, which are often missing from PATH when
the host process was not started from a login shell. Results are cached
for the process lifetime.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

_cache: dict[str, Optional[str]] = {}
_cache_lock = threading.Lock()


def default_search_paths() -> list[str]:
    home = os.path.expanduser("~")
    return [
        os.path.join(home, ".local", "bin"),
        "/usr/local/bin",
        "/opt/homebrew/bin",
        os.path.join(home, ".npm-global", "bin"),
        os.path.join(home, ".yarn", "bin"),
    ]


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def find_executable(name: str, extra_paths: Optional[Sequence[str]] = None) -> Optional[str]:
    """Uncached lookup. Returns an absolute path or None."""
    found = shutil.which(name)
    if found:
        return os.path.abspath(found)

    for directory in [*(extra_paths or []), *default_search_paths()]:
        candidate = os.path.join(directory, name)
        if _is_executable(candidate):
            return candidate

    return None


def resolve_executable(name: str, extra_paths: Optional[Sequence[str]] = None) -> Optional[str]:
    """Cached lookup of a binary by name.

    A miss is cached too; call clear_executable_cache() after installing a CLI.
    """
    key = name if not extra_paths else f"{name}:{os.pathsep.join(extra_paths)}"
    with _cache_lock:
        if key in _cache:
            return _cache[key]

    path = find_executable(name, extra_paths)
    if path:
        logger.debug(f"Resolved {name} -> {path}")
    else:
        logger.debug(f"Could not resolve {name} on PATH or common install locations")

    with _cache_lock:
        _cache[key] = path
    return path


def clear_executable_cache() -> None:
    """Forget every cached binary path."""
    with _cache_lock:
        _cache.clear()
