"""
Helpers shared by the harness implementations.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from hyperharness.util.tool_bridge import ToolBridgeHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanupItem:
    """A temporary path to delete once the backend process has exited."""

    path: str
    kind: Literal["file", "dir"] = "file"


def dedupe(*groups: Sequence[str]) -> list[str]:
    """Concatenate groups, keeping the first occurrence of each entry."""
    seen: set[str] = set()
    result: list[str] = []
    for group in groups:
        for item in group:
            if item not in seen:
                seen.add(item)
                result.append(item)
    return result


def remove_path(item: CleanupItem) -> None:
    if item.kind == "dir":
        shutil.rmtree(item.path, ignore_errors=True)
    else:
        os.unlink(item.path)


async def run_cleanup(items: Sequence[CleanupItem], bridge: Optional[ToolBridgeHandle] = None) -> None:
    """Stop the tool bridge and delete temp paths. Failures are logged, never raised."""
    if bridge is not None:
        try:
            await bridge.stop()
        except Exception as e:
            logger.debug(f"Failed to stop tool bridge: {e}")

    for item in items:
        try:
            remove_path(item)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Failed to remove {item.kind} {item.path}: {e}")
