"""Parent process monitoring.

Keeps the host application from becoming an orphan itself: if the process
that launched it dies (its parent pid changes), or it receives SIGINT or
SIGTERM, the monitor runs a shutdown callback once and then exits.

Typical wiring hands GroupManager.cleanup_all to the callback so spawned
groups are killed on the way out:

    monitor = ParentMonitor(manager.cleanup_all)
    await monitor.start()
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import signal
import sys
from typing import Any, Callable, Optional

from .config import get_config
from .runtime.capability import IS_WINDOWS

__all__ = ["ParentMonitor"]

logger = logging.getLogger(__name__)


class ParentMonitor:
    """Watches the parent process and termination signals.

    Attributes:
        interval: Seconds between parent pid checks
        parent_pid: Parent pid recorded at start()
    """

    def __init__(
        self,
        shutdown_callback: Optional[Callable[[], Any]] = None,
        *,
        interval: Optional[float] = None,
        exit_func: Optional[Callable[[int], Any]] = sys.exit,
        handle_signals: bool = True,
    ) -> None:
        """Initialize the monitor.

        Args:
            shutdown_callback: Sync or async callable run once on shutdown
            interval: Poll interval (default from PGM_MONITOR_INTERVAL)
            exit_func: Called with 0 after the callback; None disables exiting
            handle_signals: Install SIGINT/SIGTERM handlers on POSIX
        """
        self.interval = interval if interval is not None else get_config().monitor_interval
        self.parent_pid: int = os.getppid()

        self._shutdown_callback = shutdown_callback
        self._exit_func = exit_func
        self._handle_signals = handle_signals

        self._active = False
        self._shutting_down = False
        self._shutdown_reason: Optional[str] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._shutdown_task: Optional[asyncio.Task[None]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._signals_installed = False

    @property
    def is_active(self) -> bool:
        """Whether monitoring is running."""
        return self._active

    @property
    def shutdown_reason(self) -> Optional[str]:
        """Why shutdown was triggered, or None."""
        return self._shutdown_reason

    async def start(self) -> None:
        """Start monitoring.

        Must be called inside a running event loop.
        """
        if self._active:
            logger.warning("ParentMonitor already running")
            return

        self._loop = asyncio.get_running_loop()
        self.parent_pid = os.getppid()
        self._active = True
        self._poll_task = asyncio.create_task(self._poll_parent())

        if self._handle_signals and not IS_WINDOWS:
            for sig in (signal.SIGINT, signal.SIGTERM):
                self._loop.add_signal_handler(sig, self._handle_signal, sig)
            self._signals_installed = True

        logger.debug(
            f"Parent monitor started parent_pid={self.parent_pid} "
            f"interval={self.interval}s"
        )

    async def stop(self) -> None:
        """Stop monitoring and restore signal handlers."""
        if not self._active:
            return

        self._active = False

        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass

        self._remove_signal_handlers()
        logger.debug("Parent monitor stopped")

    async def wait_for_shutdown(self) -> None:
        """Wait until a triggered shutdown has finished running."""
        while self._shutdown_task is None:
            if not self._active:
                return
            await asyncio.sleep(0.05)
        await self._shutdown_task

    def _remove_signal_handlers(self) -> None:
        if not self._signals_installed or self._loop is None:
            return
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                self._loop.remove_signal_handler(sig)
            except (RuntimeError, ValueError) as e:
                logger.debug(f"Error removing signal handler {sig}: {e}")
        self._signals_installed = False

    async def _poll_parent(self) -> None:
        """Compare the parent pid on every tick.

        Once the parent dies we are reparented (to init or a subreaper),
        so any change means the original parent is gone.
        """
        while self._active:
            await asyncio.sleep(self.interval)
            current_parent = os.getppid()
            if current_parent != self.parent_pid:
                logger.info(
                    f"Parent process died, shutting down "
                    f"original_parent_pid={self.parent_pid} "
                    f"current_parent_pid={current_parent}"
                )
                self._trigger("parent process died")
                return

    def _handle_signal(self, sig: signal.Signals) -> None:
        name = signal.Signals(sig).name
        logger.info(f"Received {name}, shutting down")
        self._trigger(f"signal received: {name}")

    def _trigger(self, reason: str) -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        self._shutdown_reason = reason
        self._shutdown_task = asyncio.create_task(self._shutdown(reason))

    async def _shutdown(self, reason: str) -> None:
        """Run the callback once, then exit."""
        logger.info(f"Initiating shutdown reason={reason}")
        self._active = False
        self._remove_signal_handlers()
        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()

        if self._shutdown_callback is not None:
            try:
                result = self._shutdown_callback()
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(f"Error in shutdown callback: {e}")

        if self._exit_func is not None:
            self._exit_func(0)
