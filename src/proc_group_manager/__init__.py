"""proc-group-manager - orphan-free process group lifecycle management.

Environment variables:
    PGM_GRACE_PERIOD: Seconds to wait for a natural exit (default 2.0)
    PGM_SETTLE_PERIOD: Seconds to wait after bulk kills (default 0.5)
    PGM_DEFAULT_TIMEOUT: Default deadline (default 5.0)
    PGM_FORCE_BEST_EFFORT: Disable process group signalling (default false)

Usage:
    manager = GroupManager()
    process = await spawn_tracked(manager, ProcessSpec(argv=["server"]))
    ...
    await manager.cleanup_all(timeout=2.0)
"""

__version__ = "0.1.0"

from .errors import (
    ForcefulTerminationFailedError,
    GroupKillError,
    InvalidArgumentError,
    ProcessGroupError,
    ReapTimeoutError,
    SpawnError,
    TerminationTimeoutError,
)
from .group_manager import GroupManager
from .monitor import ParentMonitor
from .runtime import (
    BestEffortCapability,
    IsolationCapability,
    PosixGroupCapability,
    ProcessSpec,
    detect_capability,
    spawn,
    spawn_tracked,
)

__all__ = [
    "__version__",
    "BestEffortCapability",
    "ForcefulTerminationFailedError",
    "GroupKillError",
    "GroupManager",
    "InvalidArgumentError",
    "IsolationCapability",
    "ParentMonitor",
    "PosixGroupCapability",
    "ProcessGroupError",
    "ProcessSpec",
    "ReapTimeoutError",
    "SpawnError",
    "TerminationTimeoutError",
    "detect_capability",
    "spawn",
    "spawn_tracked",
]
