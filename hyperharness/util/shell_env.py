"""
Login shell environment capture.

Processes launched from a desktop launcher or a service manager inherit a
minimal PATH that usually does not include where backend CLIs live. This
runs the user's login shell once, captures ``env`` and caches the result.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from typing import Optional

logger = logging.getLogger(__name__)

_ENV_KEY_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
SHELL_ENV_TIMEOUT_SECONDS = 10.0

_cached_env: Optional[dict[str, str]] = None


def parse_env_output(output: str) -> dict[str, str]:
    """Parse ``env`` output into a mapping.

    Values may contain ``=`` so only the first one splits. Lines whose key is
    not a valid identifier (continuations of multi-line values) are skipped.
    """
    env: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep and key and _ENV_KEY_RE.match(key):
            env[key] = value
    return env


async def detect_shell_environment(shell: Optional[str] = None) -> dict[str, str]:
    """Return the environment of an interactive login shell.

    Falls back to a copy of the current process environment if the shell
    cannot be run; the fallback is not cached so a later call can retry.
    """
    global _cached_env
    if _cached_env is not None:
        return dict(_cached_env)

    target_shell = shell or os.environ.get("SHELL") or "/bin/zsh"
    try:
        proc = await asyncio.create_subprocess_exec(
            target_shell,
            "-lic",
            "env",
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=SHELL_ENV_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise
    except (OSError, asyncio.TimeoutError) as e:
        logger.warning(f"Shell environment detection via {target_shell} failed: {e}")
        return dict(os.environ)

    env = parse_env_output(stdout.decode("utf-8", errors="replace"))
    if not env:
        logger.warning(f"Shell {target_shell} produced no environment, using process env")
        return dict(os.environ)

    _cached_env = env
    return dict(env)


def clear_shell_environment_cache() -> None:
    """Forget the captured shell environment."""
    global _cached_env
    _cached_env = None
