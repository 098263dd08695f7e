"""Runtime module for process spawning and platform isolation.

This module provides the spawn collaborator and the isolation capabilities
that GroupManager delegates all OS signalling to.
"""

from __future__ import annotations

from .capability import (
    BestEffortCapability,
    IsolationCapability,
    PosixGroupCapability,
    detect_capability,
)
from .process_runner import ProcessSpec, spawn, spawn_tracked

__all__ = [
    "BestEffortCapability",
    "IsolationCapability",
    "PosixGroupCapability",
    "ProcessSpec",
    "detect_capability",
    "spawn",
    "spawn_tracked",
]
