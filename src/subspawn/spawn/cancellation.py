"""Cancellation controller — idempotent SIGTERM with a SIGKILL deadline."""

from __future__ import annotations

import asyncio
import contextlib
import logging

from subspawn.constants import GRACE_PERIOD
from subspawn.helpers import debug_trace

logger = logging.getLogger(__name__)

#: Termination reasons, in the vocabulary recorded on SpawnResult.
ABORTED = "aborted"
STDOUT_OVERFLOW = "stdout_overflow"
STDERR_OVERFLOW = "stderr_overflow"
TURNS_COMPLETE = "turns_complete"
AGENT_ERROR = "agent_error"

_EXPECTED_REASONS = {ABORTED, TURNS_COMPLETE}


class CancellationController:
    """Terminates one child process at most once.

    The first call to :meth:`terminate` sends SIGTERM and arms a timer that
    sends SIGKILL if the process is still alive after *grace_period*
    seconds.  Later calls, and calls after the process has exited, are
    no-ops.  The winning reason is kept on :attr:`reason`.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        grace_period: float = GRACE_PERIOD,
    ) -> None:
        self._process = process
        self._grace_period = grace_period
        self.reason: str | None = None
        self._kill_task: asyncio.Task[None] | None = None
        self._watch_task: asyncio.Task[None] | None = None

    @property
    def triggered(self) -> bool:
        return self.reason is not None

    def terminate(self, reason: str) -> bool:
        """Request graceful termination; returns True only for the winning call."""
        if self.reason is not None or self._process.returncode is not None:
            return False
        self.reason = reason

        debug_trace("terminate", {"reason": reason, "pid": self._process.pid})
        if reason in _EXPECTED_REASONS:
            logger.info("Terminating subagent pid %s: %s", self._process.pid, reason)
        else:
            logger.warning("Terminating subagent pid %s: %s", self._process.pid, reason)

        with contextlib.suppress(ProcessLookupError):
            self._process.terminate()
        self._kill_task = asyncio.create_task(self._kill_after_grace())
        return True

    def watch(self, signal: asyncio.Event | None) -> None:
        """Terminate when *signal* is set (immediately if it already is)."""
        if signal is None:
            return
        if signal.is_set():
            self.terminate(ABORTED)
            return
        self._watch_task = asyncio.create_task(self._watch(signal))

    async def close(self) -> None:
        """Cancel pending timers once the process has exited."""
        for task in (self._watch_task, self._kill_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._watch_task = None
        self._kill_task = None

    async def _watch(self, signal: asyncio.Event) -> None:
        await signal.wait()
        self.terminate(ABORTED)

    async def _kill_after_grace(self) -> None:
        proc = self._process
        try:
            await asyncio.wait_for(proc.wait(), timeout=self._grace_period)
        except TimeoutError:
            logger.warning(
                "Subagent pid %s did not exit after SIGTERM, sending SIGKILL", proc.pid
            )
            debug_trace("force_kill", {"pid": proc.pid})
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
