"""Process isolation capabilities.

The group manager never checks the operating system itself. It is handed
one of these capabilities instead:

- PosixGroupCapability: new session/process group on spawn, SIGKILL to the
  whole group via killpg
- BestEffortCapability: no group signalling; group kills always fail so the
  caller falls back to killing the single tracked process
"""

from __future__ import annotations

import errno
import logging
import os
import signal
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import Any

__all__ = [
    "IS_WINDOWS",
    "IsolationCapability",
    "PosixGroupCapability",
    "BestEffortCapability",
    "detect_capability",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Windows has no SIGKILL; os.kill() with any other signal calls TerminateProcess
FORCE_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)


class IsolationCapability(ABC):
    """Platform operations the group manager depends on.

    kill_group() and kill_process() are fire-and-forget: they return once
    the signal is delivered and raise OSError (ProcessLookupError when the
    target no longer exists) on failure.
    """

    name: str = "abstract"
    supports_groups: bool = False

    @abstractmethod
    def spawn_options(self) -> dict[str, Any]:
        """Keyword arguments for asyncio.create_subprocess_exec."""

    @abstractmethod
    def kill_group(self, group_id: int) -> None:
        """Forcefully signal every process in the group."""

    @abstractmethod
    def kill_process(self, pid: int) -> None:
        """Forcefully signal a single process."""

    def group_of(self, pid: int) -> int | None:
        """Return the process group of pid, or None if unknown."""
        return None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(supports_groups={self.supports_groups})"


class PosixGroupCapability(IsolationCapability):
    """POSIX process groups.

    start_new_session=True makes the child call setsid(), so its pid is
    both its session id and its process group id. Descendants inherit the
    group unless they create their own.
    """

    name = "posix-group"
    supports_groups = True

    def spawn_options(self) -> dict[str, Any]:
        return {"start_new_session": True}

    def kill_group(self, group_id: int) -> None:
        # Equivalent to kill(-group_id, SIGKILL)
        os.killpg(group_id, FORCE_SIGNAL)
        logger.debug(f"Sent SIGKILL to process group pgid={group_id}")

    def kill_process(self, pid: int) -> None:
        os.kill(pid, FORCE_SIGNAL)
        logger.debug(f"Sent SIGKILL to pid={pid}")

    def group_of(self, pid: int) -> int | None:
        try:
            return os.getpgid(pid)
        except OSError:
            return None


class BestEffortCapability(IsolationCapability):
    """Fallback for platforms without group-targeted signals.

    Isolation is only a marker here: on Windows the child gets
    CREATE_NEW_PROCESS_GROUP so console Ctrl+C does not reach it, elsewhere
    nothing changes. Descendants are not guaranteed to be killed.
    """

    name = "best-effort"
    supports_groups = False

    def spawn_options(self) -> dict[str, Any]:
        if IS_WINDOWS:
            return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
        return {}

    def kill_group(self, group_id: int) -> None:
        raise OSError(
            errno.ENOTSUP,
            f"group-targeted signals are not supported ({self.name})",
        )

    def kill_process(self, pid: int) -> None:
        os.kill(pid, FORCE_SIGNAL)
        logger.debug(f"Sent forceful signal to pid={pid}")


def detect_capability(force_best_effort: bool = False) -> IsolationCapability:
    """Pick the capability for the running platform.

    Args:
        force_best_effort: Use BestEffortCapability even if groups work

    Returns:
        The capability instance
    """
    if force_best_effort:
        logger.debug("Best-effort isolation forced by configuration")
        return BestEffortCapability()
    if not IS_WINDOWS and hasattr(os, "killpg"):
        return PosixGroupCapability()
    logger.debug("Process groups unavailable, using best-effort isolation")
    return BestEffortCapability()
