"""Process spawning for groups managed by GroupManager.

proc-group-manager runtime module v0.1.0

This module provides:
- ProcessSpec, the not-yet-started process descriptor that
  GroupManager.prepare() marks for isolation
- spawn(), which starts a spec with its isolation options applied
- spawn_tracked(), which pairs prepare/spawn/register 1:1

Key design points:
- stdin defaults to DEVNULL so the child never inherits the host's stdin
- keep_stdin_open leaves a pipe attached; closing it is the graceful
  "no more input" signal used by GroupManager.terminate()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from ..errors import InvalidArgumentError, SpawnError

if TYPE_CHECKING:
    from ..group_manager import GroupManager

__all__ = [
    "ProcessSpec",
    "spawn",
    "spawn_tracked",
]

logger = logging.getLogger(__name__)


@dataclass
class ProcessSpec:
    """Specification for a subprocess to run.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory for the process (None = inherit)
        env: Environment variables (None = inherit parent)
        stdin_bytes: Optional bytes to write to stdin
        keep_stdin_open: Leave a stdin pipe attached after writing
        capture_output: Pipe stdout/stderr instead of discarding them
        spawn_options: Extra kwargs for create_subprocess_exec, filled in
            by GroupManager.prepare()
        isolated: Set once prepare() has marked the spec
        started: Set by spawn(); a started spec cannot be prepared
    """

    argv: list[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None
    stdin_bytes: bytes | None = None
    keep_stdin_open: bool = False
    capture_output: bool = False
    spawn_options: dict[str, Any] = field(default_factory=dict)
    isolated: bool = False
    started: bool = field(default=False, init=False)


def _build_subprocess_kwargs(spec: ProcessSpec) -> dict[str, Any]:
    """Build kwargs for asyncio.create_subprocess_exec."""
    kwargs: dict[str, Any] = dict(spec.spawn_options)

    if spec.env is not None:
        kwargs["env"] = dict(spec.env)
    if spec.cwd is not None:
        kwargs["cwd"] = spec.cwd

    # Use DEVNULL instead of None: stdin=None would inherit the host's stdin
    wants_stdin = spec.stdin_bytes is not None or spec.keep_stdin_open
    kwargs["stdin"] = asyncio.subprocess.PIPE if wants_stdin else asyncio.subprocess.DEVNULL

    output = asyncio.subprocess.PIPE if spec.capture_output else asyncio.subprocess.DEVNULL
    kwargs["stdout"] = output
    kwargs["stderr"] = output

    return kwargs


async def spawn(spec: ProcessSpec) -> asyncio.subprocess.Process:
    """Start the process described by spec.

    Args:
        spec: Process specification

    Returns:
        The running asyncio process

    Raises:
        InvalidArgumentError: If spec is missing, empty or already started
        SpawnError: If the executable cannot be started
    """
    if spec is None or not spec.argv:
        raise InvalidArgumentError("process spec with a non-empty argv is required")
    if spec.started:
        raise InvalidArgumentError("process spec has already been started")

    kwargs = _build_subprocess_kwargs(spec)

    try:
        process = await asyncio.create_subprocess_exec(*spec.argv, **kwargs)
    except OSError as e:
        raise SpawnError(spec.argv, str(e)) from e

    spec.started = True
    logger.debug(
        f"Started subprocess pid={process.pid} "
        f"argv={spec.argv[0]} isolated={spec.isolated}"
    )

    if spec.stdin_bytes is not None and process.stdin:
        process.stdin.write(spec.stdin_bytes)
        try:
            await process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"stdin closed early pid={process.pid}: {e}")
        if not spec.keep_stdin_open:
            process.stdin.close()

    return process


async def spawn_tracked(
    manager: GroupManager,
    spec: ProcessSpec,
) -> asyncio.subprocess.Process:
    """Prepare, start and register a process in one step.

    Args:
        manager: Group manager that will own the new group
        spec: Process specification (not yet started)

    Returns:
        The running asyncio process, already tracked by manager
    """
    manager.prepare(spec)
    process = await spawn(spec)
    manager.register(process)
    return process
