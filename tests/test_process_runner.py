"""Process runner tests.

Test coverage:
- Argument checking and the started flag
- Stdin writing and keep_stdin_open
- Output capture
- Spawn failures
- spawn_tracked() pairing with GroupManager
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from conftest import RecordingCapability

from proc_group_manager.errors import InvalidArgumentError, SpawnError
from proc_group_manager.group_manager import GroupManager
from proc_group_manager.runtime.capability import IS_WINDOWS, PosixGroupCapability
from proc_group_manager.runtime.process_runner import (
    ProcessSpec,
    _build_subprocess_kwargs,
    spawn,
    spawn_tracked,
)


@pytest.fixture
def temp_workspace(tmp_path: Path) -> Path:
    """Create temporary workspace directory."""
    workspace = tmp_path / "workspace"
    workspace.mkdir()
    return workspace


# =============================================================================
# Kwargs Tests
# =============================================================================


class TestSubprocessKwargs:
    """Test _build_subprocess_kwargs()."""

    def test_defaults_discard_streams(self):
        kwargs = _build_subprocess_kwargs(ProcessSpec(argv=["true"]))

        assert kwargs["stdin"] == asyncio.subprocess.DEVNULL
        assert kwargs["stdout"] == asyncio.subprocess.DEVNULL
        assert kwargs["stderr"] == asyncio.subprocess.DEVNULL
        assert "env" not in kwargs
        assert "cwd" not in kwargs

    def test_stdin_pipe_when_kept_open(self):
        kwargs = _build_subprocess_kwargs(ProcessSpec(argv=["cat"], keep_stdin_open=True))
        assert kwargs["stdin"] == asyncio.subprocess.PIPE

    def test_spawn_options_applied(self, temp_workspace: Path):
        spec = ProcessSpec(
            argv=["true"],
            cwd=temp_workspace,
            env={"A": "1"},
            capture_output=True,
            spawn_options={"start_new_session": True},
        )
        kwargs = _build_subprocess_kwargs(spec)

        assert kwargs["start_new_session"] is True
        assert kwargs["cwd"] == temp_workspace
        assert kwargs["env"] == {"A": "1"}
        assert kwargs["stdout"] == asyncio.subprocess.PIPE


# =============================================================================
# Spawn Tests
# =============================================================================


class TestSpawn:
    """Test spawn()."""

    @pytest.mark.asyncio
    async def test_empty_argv_rejected(self):
        with pytest.raises(InvalidArgumentError):
            await spawn(ProcessSpec(argv=[]))

    @pytest.mark.asyncio
    async def test_missing_executable(self, temp_workspace: Path):
        spec = ProcessSpec(argv=[str(temp_workspace / "no-such-binary")])

        with pytest.raises(SpawnError) as exc_info:
            await spawn(spec)

        assert isinstance(exc_info.value.__cause__, OSError)
        assert spec.started is False

    @pytest.mark.asyncio
    async def test_spec_started_once(self):
        spec = ProcessSpec(argv=[sys.executable, "-c", "pass"])

        process = await spawn(spec)
        await process.wait()

        assert spec.started is True
        with pytest.raises(InvalidArgumentError):
            await spawn(spec)

    @pytest.mark.asyncio
    async def test_stdin_bytes_and_capture(self):
        spec = ProcessSpec(
            argv=[sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read())"],
            stdin_bytes=b"hello from stdin\n",
            capture_output=True,
        )

        process = await spawn(spec)
        stdout, _ = await process.communicate()

        assert b"hello from stdin" in stdout
        assert process.returncode == 0

    @pytest.mark.asyncio
    async def test_keep_stdin_open(self):
        spec = ProcessSpec(
            argv=[sys.executable, "-c", "import sys; sys.stdin.read()"],
            stdin_bytes=b"first\n",
            keep_stdin_open=True,
        )

        process = await spawn(spec)
        try:
            assert process.stdin is not None
            assert not process.stdin.is_closing()
            await asyncio.sleep(0.2)
            assert process.returncode is None
        finally:
            process.stdin.close()
            await asyncio.wait_for(process.wait(), timeout=5.0)

        assert process.returncode == 0


# =============================================================================
# spawn_tracked Tests
# =============================================================================


class TestSpawnTracked:
    """Test spawn_tracked()."""

    @pytest.mark.asyncio
    async def test_prepares_spawns_and_registers(self):
        capability = RecordingCapability()
        manager = GroupManager(capability, grace_period=0.1)
        spec = ProcessSpec(argv=[sys.executable, "-c", "pass"])

        process = await spawn_tracked(manager, spec)
        await process.wait()

        assert spec.isolated is True
        assert spec.spawn_options["start_new_session"] is True
        assert manager.tracked_groups() == frozenset({process.pid})

    @pytest.mark.asyncio
    async def test_failed_spawn_is_not_tracked(self, temp_workspace: Path):
        manager = GroupManager(RecordingCapability())

        with pytest.raises(SpawnError):
            await spawn_tracked(manager, ProcessSpec(argv=[str(temp_workspace / "missing")]))

        assert manager.tracked_count() == 0

    @pytest.mark.asyncio
    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX-specific test")
    async def test_terminate_after_spawn_tracked(self):
        manager = GroupManager(PosixGroupCapability(), grace_period=0.2)
        process = await spawn_tracked(
            manager, ProcessSpec(argv=[sys.executable, "-c", "import time; time.sleep(30)"])
        )

        await manager.terminate(process, timeout=3.0)

        assert process.returncode is not None
        assert manager.tracked_count() == 0
