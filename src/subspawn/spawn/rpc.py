"""RPC injector — drives a multi-turn session over the child's stdin.

Both commands are written eagerly at startup.  The child queues the
follow-up and only delivers it once its own turn loop goes idle, so
writing it late would race the child's exit after the first turn.
"""

from __future__ import annotations

import asyncio
import json
import logging

from subspawn.constants import TURN_END_REASONS, TURN_ERROR_REASONS
from subspawn.helpers import debug_trace
from subspawn.spawn.cancellation import (
    AGENT_ERROR,
    TURNS_COMPLETE,
    CancellationController,
)

logger = logging.getLogger(__name__)


def encode_command(command: dict[str, object]) -> bytes:
    """Serialize one stdin command as a compact JSON line."""
    return (json.dumps(command, separators=(",", ":")) + "\n").encode()


class RpcInjector:
    """Sends the prompt and follow-up, then counts turns to know when to stop."""

    def __init__(
        self,
        stdin: asyncio.StreamWriter,
        controller: CancellationController,
        task: str,
        follow_up: str | None = None,
    ) -> None:
        self._stdin = stdin
        self._controller = controller
        self._task = task
        self._follow_up = follow_up
        self.completed_turns = 0

    @property
    def expected_turns(self) -> int:
        return 2 if self._follow_up else 1

    async def start(self) -> None:
        """Write the prompt command and, if configured, the follow-up."""
        commands: list[tuple[str, dict[str, object]]] = [
            ("send_prompt", {"type": "prompt", "message": f"Task: {self._task}"}),
        ]
        if self._follow_up:
            commands.append(
                ("send_follow_up", {"type": "follow_up", "message": self._follow_up})
            )

        try:
            for label, command in commands:
                debug_trace(label)
                self._stdin.write(encode_command(command))
            await self._stdin.drain()
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            logger.error("Failed to write RPC commands to subagent: %s", exc)

    def on_turn_end(self, stop_reason: str | None) -> None:
        """Count a finished assistant message and stop the child when done."""
        is_turn_end = stop_reason in TURN_END_REASONS
        debug_trace(
            "turn_end",
            {
                "stopReason": stop_reason,
                "isTurnEnd": is_turn_end,
                "endTurnCount": self.completed_turns,
                "expectedTurns": self.expected_turns,
            },
        )

        if is_turn_end:
            self.completed_turns += 1
            if self.completed_turns >= self.expected_turns:
                debug_trace("kill_after_turn", {"endTurnCount": self.completed_turns})
                self._controller.terminate(TURNS_COMPLETE)
        elif stop_reason in TURN_ERROR_REASONS:
            debug_trace("kill_after_error", {"stopReason": stop_reason})
            self._controller.terminate(AGENT_ERROR)
