"""Progress state machine and text rendering for in-flight subagents."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from subspawn.constants import SPINNER_FRAMES
from subspawn.helpers import format_duration, sanitize_display_text, truncate_inline
from subspawn.spawn.models import Phase

#: Max recent-action entries kept for display.
MAX_RECENT_ACTIONS = 4

#: Label shown while the subagent streams its answer.
SYNTHESIZING_LABEL = "Synthesizing findings"

#: Max characters of a rendered progress snapshot.
MAX_PROGRESS_CHARS = 6000

#: Max characters of a single tool-call description.
MAX_ACTION_CHARS = 512

_AGGREGATED_RE = re.compile(r"^(.*) ×(\d+)$")

_PHASE_HEADERS: dict[str, str] = {
    "booting": "is starting up",
    "exploring": "is exploring",
    "writing": "is drafting the final answer",
}


@dataclass
class ProgressState:
    """Coarse progress of one subagent, owned by its interpreter."""

    started_at: float = field(default_factory=time.monotonic)
    phase: Phase = "booting"
    started_tools: int = 0
    completed_tools: int = 0
    failed_tools: int = 0
    current_action: str | None = None
    recent_actions: list[str] = field(default_factory=list)

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started_at

    def add_recent(self, item: str) -> None:
        """Push *item* to the front, collapsing consecutive repeats into ×N."""
        if self.recent_actions:
            first = self.recent_actions[0]
            if first == item:
                self.recent_actions[0] = f"{item} ×2"
                return
            match = _AGGREGATED_RE.match(first)
            if match and match.group(1) == item:
                self.recent_actions[0] = f"{item} ×{int(match.group(2)) + 1}"
                return

        self.recent_actions.insert(0, item)
        del self.recent_actions[MAX_RECENT_ACTIONS:]


def _str_arg(args: dict[str, Any], key: str) -> str | None:
    value = args.get(key)
    return value if isinstance(value, str) and value else None


def summarize_tool_call(tool_name: str, args: Any) -> str:
    """Describe a tool call in a short human-readable phrase."""
    if not isinstance(args, dict):
        args = {}
    repo = _str_arg(args, "repository")
    in_repo = f" in {repo}" if repo else ""
    path = _str_arg(args, "path") or _str_arg(args, "file_path")

    match tool_name:
        case "read":
            return f"Reading {path or '(unknown path)'}"
        case "write" | "edit":
            leaf = PurePath(path).name if path else "(unknown path)"
            verb = "Writing" if tool_name == "write" else "Editing"
            return f"{verb} {leaf}"
        case "bash":
            command = (_str_arg(args, "command") or "").strip()
            return f"Running `{truncate_inline(command, 80)}`" if command else "Running bash"
        case "grep":
            pattern = _str_arg(args, "pattern") or "pattern"
            return f"Searching for “{truncate_inline(pattern, 52)}”"
        case "find":
            pattern = _str_arg(args, "pattern") or "pattern"
            return f"Finding {truncate_inline(pattern, 52)}"
        case "ls":
            return f"Listing {path or '.'}"
        case "read_github":
            return f"Reading {repo or 'repo'}:{path or '(unknown path)'}"
        case "search_github":
            pattern = _str_arg(args, "pattern") or "query"
            return f"Searching code for “{truncate_inline(pattern, 52)}”{in_repo}"
        case "glob_github":
            pattern = _str_arg(args, "filePattern") or "pattern"
            return f"Globbing {truncate_inline(pattern, 52)}{in_repo}"
        case "list_directory_github":
            return f"Listing directory {path or '/'}{in_repo}"
        case "commit_search":
            query = _str_arg(args, "query")
            q = f" for “{truncate_inline(query, 48)}”" if query else ""
            return f"Scanning commits{q}{in_repo}"
        case "diff":
            base = _str_arg(args, "base") or "base"
            head = _str_arg(args, "head") or "head"
            return f"Comparing {base}...{head}{in_repo}"
        case "list_repositories":
            return _summarize_list_repositories(args)
        case _:
            return f"Running {tool_name}"


def _summarize_list_repositories(args: dict[str, Any]) -> str:
    filters: list[str] = []
    pattern = _str_arg(args, "pattern")
    if pattern and pattern.strip():
        filters.append(f'name~"{truncate_inline(pattern.strip(), 24)}"')
    org = _str_arg(args, "organization")
    if org and org.strip():
        filters.append(f"org:{org.strip()}")
    language = _str_arg(args, "language")
    if language and language.strip():
        filters.append(f"lang:{language.strip()}")

    limit = args.get("limit") if isinstance(args.get("limit"), int) else 30
    offset = args.get("offset") if isinstance(args.get("offset"), int) else 0

    scope = f" ({', '.join(filters)})" if filters else ""
    page = f" [offset {offset}, limit {limit}]" if offset > 0 else ""
    return f"Discovering repositories{scope}{page}"


def describe_tool_call(tool_name: Any, args: Any) -> str:
    """Sanitized, length-capped :func:`summarize_tool_call`."""
    name = str(tool_name) if tool_name is not None else "tool"
    return sanitize_display_text(summarize_tool_call(name, args), MAX_ACTION_CHARS)


def render_progress(state: ProgressState, label: str = "Subagent") -> str:
    """Render the multi-line progress snapshot for *state*."""
    elapsed = state.elapsed
    frame = SPINNER_FRAMES[int(elapsed * 1000 // 120) % len(SPINNER_FRAMES)]
    header = (
        f"{frame} {label} {_PHASE_HEADERS[state.phase]} ({format_duration(elapsed)})"
    )

    counts = f"Tools: {state.completed_tools}/{state.started_tools} completed"
    if state.failed_tools > 0:
        counts += f" ({state.failed_tools} failed)"

    lines = [header, counts]
    if state.current_action:
        lines.append(f"Current: {truncate_inline(state.current_action)}")
    if state.recent_actions:
        recent = " • ".join(truncate_inline(a, 42) for a in state.recent_actions)
        lines.append(f"Recent: {recent}")

    return sanitize_display_text("\n".join(lines), MAX_PROGRESS_CHARS)
