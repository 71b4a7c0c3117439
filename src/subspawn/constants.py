"""Shared constants for the subspawn runtime."""

from __future__ import annotations

#: Default agent executable (overridable via ``PI_BIN`` or config).
DEFAULT_BIN = "pi"

#: Seconds between SIGTERM and SIGKILL when terminating a subagent.
GRACE_PERIOD = 5.0

#: Seconds between progress re-renders while a subagent runs.
HEARTBEAT_INTERVAL = 1.5

#: Max bytes buffered from subagent stdout before it is killed (2 MB).
MAX_STDOUT_BUFFER = 2 * 1024 * 1024

#: Max bytes of subagent stderr kept before it is killed (512 KB).
MAX_STDERR_BUFFER = 512 * 1024

#: Read size for each chunk pulled off the child's pipes.
READ_CHUNK_BYTES = 65_536

#: Env var that switches on the ``[pi-spawn]`` debug traces.
DEBUG_ENV = "PI_SPAWN_DEBUG"

#: Env var passed to the child enabling compact session-read output.
READ_COMPACT_ENV = "PI_READ_COMPACT"

#: Env var passed to the child listing extra extension tools.
INCLUDE_TOOLS_ENV = "PI_INCLUDE_TOOLS"

#: Exit code reported for cancelled or failed-to-start subagents.
EXIT_FAILURE = 1

#: Stop reasons that mark a completed assistant turn.
TURN_END_REASONS = frozenset({"end_turn", "stop"})

#: Stop reasons that abort an interactive session.
TURN_ERROR_REASONS = frozenset({"error", "aborted"})

SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")
