"""Process group tracking and termination.

GroupManager owns the set of process groups this application spawned and
guarantees that tearing one down leaves no descendant behind:

- prepare(): mark a ProcessSpec so the child starts in its own group
- register(): track the started child's pid as its group id
- terminate(): close stdin, wait for a natural exit, then SIGKILL the
  whole group (falling back to the single process) within a deadline
- cleanup_all(): SIGKILL every tracked group at shutdown, best effort

A group is untracked before any signal is sent. A failed termination
therefore never leaves an entry that still claims ownership; callers that
need proof of death should check with proc_group_manager.diagnostics.
"""

from __future__ import annotations

import asyncio
import atexit
import logging
import threading
from typing import Any

import anyio

from .config import get_config
from .errors import (
    ForcefulTerminationFailedError,
    GroupKillError,
    InvalidArgumentError,
    ProcessGroupError,
    ReapTimeoutError,
    TerminationTimeoutError,
)
from .runtime.capability import IsolationCapability, detect_capability
from .runtime.process_runner import ProcessSpec

__all__ = ["GroupManager"]

logger = logging.getLogger(__name__)

# pid_t is a signed 32-bit int on every supported platform
MAX_PID = 2**31 - 1

# os.kill/os.killpg raise OverflowError for ids outside the C int range
_KILL_ERRORS = (OSError, OverflowError, ValueError)


class GroupManager:
    """Tracks spawned process groups and tears them down without orphans.

    The tracked set is guarded by a threading.Lock, so registration and
    termination may run from different threads or event loops. The lock is
    never held across an await.

    Example:
        manager = GroupManager()
        spec = ProcessSpec(argv=["my-server", "--stdio"], keep_stdin_open=True)

        manager.prepare(spec)
        process = await spawn(spec)
        manager.register(process)
        ...
        await manager.terminate(process, timeout=5.0)

    Attributes:
        grace_period: Seconds to wait for a natural exit before SIGKILL
        settle_period: Seconds cleanup_all() waits after signalling
        default_timeout: Deadline used when a call passes no timeout
    """

    def __init__(
        self,
        capability: IsolationCapability | None = None,
        *,
        grace_period: float | None = None,
        settle_period: float | None = None,
        default_timeout: float | None = None,
    ) -> None:
        config = get_config()
        self._capability = (
            capability
            if capability is not None
            else detect_capability(config.force_best_effort)
        )
        self.grace_period = grace_period if grace_period is not None else config.grace_period
        self.settle_period = (
            settle_period if settle_period is not None else config.settle_period
        )
        self.default_timeout = (
            default_timeout if default_timeout is not None else config.default_timeout
        )

        self._lock = threading.Lock()
        self._tracked: set[int] = set()
        self._atexit_registered = False

    @property
    def capability(self) -> IsolationCapability:
        """The isolation capability in use."""
        return self._capability

    # ------------------------------------------------------------------
    # Preparation and registration
    # ------------------------------------------------------------------

    def prepare(self, spec: ProcessSpec) -> ProcessSpec:
        """Mark a not-yet-started spec so the child gets its own group.

        With a best-effort capability this only records the marker; later
        termination degrades to killing the single process.

        Args:
            spec: Process specification, not yet started

        Returns:
            The same spec, for chaining

        Raises:
            InvalidArgumentError: If spec is None or already started
        """
        if spec is None:
            raise InvalidArgumentError("process spec cannot be None")
        if spec.started:
            raise InvalidArgumentError("process spec must be prepared before it is started")

        spec.spawn_options.update(self._capability.spawn_options())
        spec.isolated = True

        logger.debug(
            f"Prepared spec argv={spec.argv[0] if spec.argv else None} "
            f"capability={self._capability.name}"
        )
        return spec

    def register(self, process: Any) -> int:
        """Track a started process as the leader of its own group.

        Args:
            process: Started process exposing a pid

        Returns:
            The group id now tracked (equal to the pid)

        Raises:
            InvalidArgumentError: If the process or its pid is unavailable
        """
        if process is None:
            raise InvalidArgumentError("process cannot be None")
        pid = getattr(process, "pid", None)
        if isinstance(pid, bool) or not isinstance(pid, int) or not 0 < pid <= MAX_PID:
            raise InvalidArgumentError(f"process has no valid pid: {pid!r}")

        with self._lock:
            if pid in self._tracked:
                logger.warning(f"Process group already tracked pgid={pid}")
            self._tracked.add(pid)
            count = len(self._tracked)

        logger.debug(f"Registered process group pgid={pid} tracked={count}")
        return pid

    # ------------------------------------------------------------------
    # Tracking reads
    # ------------------------------------------------------------------

    def tracked_count(self) -> int:
        """Number of process groups currently tracked."""
        with self._lock:
            return len(self._tracked)

    def tracked_groups(self) -> frozenset[int]:
        """Snapshot of the tracked group ids."""
        with self._lock:
            return frozenset(self._tracked)

    def is_tracked(self, group_id: int) -> bool:
        with self._lock:
            return group_id in self._tracked

    def _untrack(self, group_id: int) -> None:
        with self._lock:
            self._tracked.discard(group_id)

    # ------------------------------------------------------------------
    # Termination
    # ------------------------------------------------------------------

    async def terminate(self, process: Any, timeout: float | None = None) -> None:
        """Terminate one process group, gracefully first.

        Termination strategy:
        1. Untrack the group (never rolled back)
        2. Close stdin and wait up to grace_period for a natural exit
        3. If the deadline is no longer than the grace period, give up
           without sending any signal
        4. SIGKILL the whole group, or just the process if that fails
        5. Wait for the process to be reaped until the deadline

        Args:
            process: Started process (None is a no-op)
            timeout: Overall deadline in seconds (default: default_timeout)

        Raises:
            TerminationTimeoutError: Deadline elapsed during the grace wait
            ForcefulTerminationFailedError: Neither group nor process could be killed
            ReapTimeoutError: Killed but not reaped before the deadline
        """
        if process is None:
            return

        pid = process.pid
        if timeout is None:
            timeout = self.default_timeout

        self._untrack(pid)

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        self._close_stdin(process)

        wait_task = asyncio.create_task(process.wait())
        try:
            # Phase 1: graceful
            grace = max(0.0, min(self.grace_period, timeout))
            done, _ = await asyncio.wait({wait_task}, timeout=grace)
            if wait_task in done:
                wait_task.result()
                logger.debug(
                    f"Process exited gracefully pid={pid} "
                    f"returncode={getattr(process, 'returncode', None)}"
                )
                return

            if timeout <= self.grace_period:
                logger.warning(f"Deadline reached before escalation pid={pid}")
                raise TerminationTimeoutError(pid, timeout)

            # Phase 2: forceful, cannot be aborted once sent
            logger.debug(f"Grace period elapsed, force killing group pgid={pid}")
            self._force_kill(process)

            remaining = max(0.0, deadline - loop.time())
            done, _ = await asyncio.wait({wait_task}, timeout=remaining)
            if wait_task not in done:
                logger.warning(f"Process did not exit after kill pid={pid}")
                raise ReapTimeoutError(pid, timeout)

            wait_task.result()
            logger.debug(
                f"Process group killed pgid={pid} "
                f"returncode={getattr(process, 'returncode', None)}"
            )
        finally:
            if not wait_task.done():
                wait_task.cancel()
                try:
                    await wait_task
                except asyncio.CancelledError:
                    pass

    def _close_stdin(self, process: Any) -> None:
        """Close the process's stdin, signalling "no more input"."""
        stdin = getattr(process, "stdin", None)
        if stdin is None:
            return
        try:
            stdin.close()
            logger.debug(f"Closed stdin pid={process.pid}")
        except (OSError, RuntimeError) as e:
            logger.debug(f"Closing stdin failed pid={process.pid}: {e}")

    def _force_kill(self, process: Any) -> None:
        """SIGKILL the group led by process, falling back to the process."""
        pid = process.pid
        try:
            self._capability.kill_group(pid)
            return
        except OSError as e:
            group_error = e

        logger.warning(
            f"Group kill failed pgid={pid}, falling back to single process: {group_error}"
        )
        try:
            # The handle, unlike a bare pid, cannot signal a reused pid
            process.kill()
        except OSError as process_error:
            if getattr(process, "returncode", None) is not None:
                # Exited between the grace wait and the kill
                logger.debug(f"Process already exited pid={pid}")
                return
            raise ForcefulTerminationFailedError(
                pid, group_error, process_error
            ) from process_error

    # ------------------------------------------------------------------
    # Bulk cleanup
    # ------------------------------------------------------------------

    async def cleanup_all(self, timeout: float | None = None) -> None:
        """SIGKILL every tracked group.

        Every group is signalled and untracked even if some fail; only the
        last failure is raised, after the settle period. Reaping is not
        confirmed per group. Use terminate() when per-group results matter.

        Args:
            timeout: Upper bound on the settle wait (default: default_timeout)

        Raises:
            GroupKillError: The last group that could not be killed
        """
        with self._lock:
            if not self._tracked:
                return
            group_ids = list(self._tracked)

        if timeout is None:
            timeout = self.default_timeout

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        last_error: GroupKillError | None = None

        logger.info(f"Cleaning up {len(group_ids)} process group(s)")

        for group_id in group_ids:
            try:
                self._capability.kill_group(group_id)
            except _KILL_ERRORS as group_error:
                logger.debug(
                    f"Group kill failed pgid={group_id}, trying single process: {group_error}"
                )
                try:
                    self._capability.kill_process(group_id)
                except _KILL_ERRORS as process_error:
                    last_error = GroupKillError(group_id, process_error)
                    logger.warning(str(last_error))
            finally:
                self._untrack(group_id)

        # Give the OS time to reap
        settle = min(self.settle_period, max(0.0, deadline - loop.time()))
        if settle > 0:
            await asyncio.sleep(settle)

        if last_error is not None:
            raise last_error from last_error.cause

    def cleanup_all_sync(self, timeout: float | None = None) -> None:
        """Run cleanup_all() from code with no running event loop."""
        anyio.run(self.cleanup_all, timeout)

    def install_atexit(self, timeout: float | None = None) -> None:
        """Register a last-resort cleanup_all() at interpreter exit."""
        with self._lock:
            if self._atexit_registered:
                return
            self._atexit_registered = True
        atexit.register(self._atexit_cleanup, timeout)

    def _atexit_cleanup(self, timeout: float | None) -> None:
        try:
            self.cleanup_all_sync(timeout)
        except ProcessGroupError as e:
            logger.warning(f"atexit cleanup incomplete: {e}")

    def __repr__(self) -> str:
        return (
            f"GroupManager(capability={self._capability.name}, "
            f"tracked={self.tracked_count()}, "
            f"grace_period={self.grace_period})"
        )
