"""Exceptions raised by the process group manager.

proc-group-manager v0.1.0
"""

from __future__ import annotations

__all__ = [
    "ProcessGroupError",
    "InvalidArgumentError",
    "TerminationTimeoutError",
    "ForcefulTerminationFailedError",
    "ReapTimeoutError",
    "GroupKillError",
    "SpawnError",
]


class ProcessGroupError(Exception):
    """Base exception for the package."""
    pass


class InvalidArgumentError(ProcessGroupError, ValueError):
    """A required descriptor, process or identifier is missing."""
    pass


class TerminationTimeoutError(ProcessGroupError, TimeoutError):
    """The caller's deadline elapsed during the graceful phase.

    No forceful signal was sent.

    Attributes:
        pid: Process identifier
        timeout: Deadline in seconds
    """

    def __init__(self, pid: int, timeout: float) -> None:
        self.pid = pid
        self.timeout = timeout
        super().__init__(
            f"timeout waiting for process {pid} to terminate ({timeout:g}s)"
        )


class ForcefulTerminationFailedError(ProcessGroupError):
    """Both the group kill and the single-process fallback failed.

    Attributes:
        pid: Process identifier
        group_error: Error from the group-targeted signal
        process_error: Error from the single-process fallback
    """

    def __init__(
        self,
        pid: int,
        group_error: BaseException | None,
        process_error: BaseException,
    ) -> None:
        self.pid = pid
        self.group_error = group_error
        self.process_error = process_error
        super().__init__(
            f"failed to kill process or process group {pid}: "
            f"{process_error} (original: {group_error})"
        )


class ReapTimeoutError(ProcessGroupError, TimeoutError):
    """The forceful signal was delivered but the process was not reaped in time.

    Attributes:
        pid: Process identifier
        timeout: Deadline in seconds
    """

    def __init__(self, pid: int, timeout: float) -> None:
        self.pid = pid
        self.timeout = timeout
        super().__init__(
            f"process {pid} did not die after SIGKILL within timeout ({timeout:g}s)"
        )


class GroupKillError(ProcessGroupError):
    """A group could not be killed during bulk cleanup.

    Attributes:
        group_id: Process group identifier
        cause: Underlying OS error
    """

    def __init__(self, group_id: int, cause: BaseException) -> None:
        self.group_id = group_id
        self.cause = cause
        super().__init__(f"failed to kill process group {group_id}: {cause}")


class SpawnError(ProcessGroupError):
    """The process could not be started.

    Attributes:
        argv: Command line that failed
    """

    def __init__(self, argv: list[str], message: str) -> None:
        self.argv = list(argv)
        super().__init__(f"failed to start {argv[0] if argv else '<empty>'}: {message}")
