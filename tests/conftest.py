"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from proc_group_manager.runtime.capability import IsolationCapability  # noqa: E402

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SPAWN_TREE = FIXTURES_DIR / "spawn_tree.py"


# =============================================================================
# Fakes
# =============================================================================


class FakeStdin:
    """Stand-in for a process stdin stream."""

    def __init__(self, on_close=None) -> None:
        self.closed = False
        self._on_close = on_close

    def close(self) -> None:
        self.closed = True
        if self._on_close:
            self._on_close()


class FakeProcess:
    """Asyncio-process lookalike whose exit is driven by the test.

    Args:
        pid: Process id to report
        exit_on_stdin_close: Exit as soon as stdin is closed
        ignore_kill: Survive kill() (simulates an unreapable process)
        kill_error: Exception raised by kill()
    """

    def __init__(
        self,
        pid: int,
        *,
        exit_on_stdin_close: bool = False,
        ignore_kill: bool = False,
        kill_error: BaseException | None = None,
    ) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.ignore_kill = ignore_kill
        self.kill_error = kill_error
        self.kill_calls = 0
        self._exited = asyncio.Event()
        self.stdin = FakeStdin(
            on_close=(lambda: self.exit(0)) if exit_on_stdin_close else None
        )

    def exit(self, returncode: int) -> None:
        if self.returncode is None:
            self.returncode = returncode
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def kill(self) -> None:
        self.kill_calls += 1
        if self.kill_error is not None:
            raise self.kill_error
        if not self.ignore_kill:
            self.exit(-9)


class RecordingCapability(IsolationCapability):
    """Capability that records every OS call instead of making it.

    Group kills are applied to registered FakeProcess objects so the
    manager can observe a reaped process.
    """

    name = "recording"
    supports_groups = True

    def __init__(
        self,
        *,
        group_error: OSError | None = None,
        process_error: OSError | None = None,
        failing_groups: set[int] | None = None,
    ) -> None:
        self.group_error = group_error
        self.process_error = process_error
        self.failing_groups = failing_groups
        self.group_kills: list[int] = []
        self.process_kills: list[int] = []
        self.processes: dict[int, FakeProcess] = {}

    def add(self, process: FakeProcess) -> FakeProcess:
        self.processes[process.pid] = process
        return process

    @property
    def calls(self) -> int:
        return len(self.group_kills) + len(self.process_kills)

    def spawn_options(self) -> dict:
        return {"start_new_session": True}

    def kill_group(self, group_id: int) -> None:
        self.group_kills.append(group_id)
        if self.group_error is not None and (
            self.failing_groups is None or group_id in self.failing_groups
        ):
            raise self.group_error
        process = self.processes.get(group_id)
        if process is not None and not process.ignore_kill:
            process.exit(-9)

    def kill_process(self, pid: int) -> None:
        self.process_kills.append(pid)
        if self.process_error is not None and (
            self.failing_groups is None or pid in self.failing_groups
        ):
            raise self.process_error


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def capability() -> RecordingCapability:
    """Recording capability with no failures."""
    return RecordingCapability()


@pytest.fixture
def spawn_tree_argv() -> list[str]:
    """argv prefix that runs the process tree fixture script."""
    return [sys.executable, str(SPAWN_TREE)]
