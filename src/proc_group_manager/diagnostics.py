"""Structured process table enumeration.

Used to verify after the fact that a torn-down group left nothing behind.
GroupManager never consults this module: the tracked set is its only
source of truth.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import psutil

__all__ = [
    "ProcessRecord",
    "list_processes",
    "find_group_members",
    "find_by_name",
    "descendants",
    "group_alive",
]

logger = logging.getLogger(__name__)

_ATTRS = ["pid", "ppid", "name", "status"]


@dataclass(frozen=True)
class ProcessRecord:
    """One live process table entry.

    Attributes:
        pid: Process id
        ppid: Parent process id
        pgid: Process group id (None where groups are not queryable)
        name: Command name
        status: psutil status string (running, sleeping, zombie, ...)
    """

    pid: int
    ppid: int
    pgid: int | None
    name: str
    status: str

    @property
    def is_zombie(self) -> bool:
        return self.status == psutil.STATUS_ZOMBIE


def _pgid_of(pid: int) -> int | None:
    if not hasattr(os, "getpgid"):
        return None
    try:
        return os.getpgid(pid)
    except OSError:
        return None


def _record(proc: psutil.Process) -> ProcessRecord | None:
    """Build a record from process_iter() info, None if the pid is unknown."""
    info = proc.info
    if info.get("pid") is None:
        return None
    return ProcessRecord(
        pid=info["pid"],
        ppid=info["ppid"] or 0,
        pgid=_pgid_of(info["pid"]),
        name=info["name"] or "",
        status=info["status"] or "",
    )


def list_processes() -> list[ProcessRecord]:
    """Snapshot the whole process table."""
    records = []
    for proc in psutil.process_iter(_ATTRS):
        record = _record(proc)
        if record is not None:
            records.append(record)
    return records


def find_group_members(pgid: int, include_zombies: bool = False) -> list[ProcessRecord]:
    """Live processes whose process group is pgid.

    Args:
        pgid: Process group id
        include_zombies: Also return exited-but-unreaped entries

    Returns:
        Matching records, possibly empty
    """
    return [
        record
        for record in list_processes()
        if record.pgid == pgid and (include_zombies or not record.is_zombie)
    ]


def find_by_name(name: str) -> list[ProcessRecord]:
    """Processes whose command name contains name."""
    return [record for record in list_processes() if name in record.name]


def descendants(pid: int) -> list[ProcessRecord]:
    """All live descendants of pid (children, grandchildren, ...)."""
    try:
        children = psutil.Process(pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return []

    records = []
    for child in children:
        try:
            record = _record_from_process(child)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
        records.append(record)
    return records


def _record_from_process(proc: psutil.Process) -> ProcessRecord:
    with proc.oneshot():
        return ProcessRecord(
            pid=proc.pid,
            ppid=proc.ppid(),
            pgid=_pgid_of(proc.pid),
            name=proc.name(),
            status=proc.status(),
        )


def group_alive(pgid: int) -> bool:
    """Whether any non-zombie process remains in the group."""
    alive = bool(find_group_members(pgid))
    logger.debug(f"Process group pgid={pgid} alive={alive}")
    return alive
