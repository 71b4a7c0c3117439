"""Shared helper functions for subagent spawning and display."""

from __future__ import annotations

import json
import os
import re
from typing import Any

import click

from subspawn.constants import DEBUG_ENV

_ANSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def format_duration(seconds: float) -> str:
    """Format elapsed time as '34s' or '1m 22s'."""
    sec = max(0, int(seconds))
    if sec < 60:
        return f"{sec}s"
    return f"{sec // 60}m {sec % 60}s"


def truncate_inline(text: str, max_chars: int = 88) -> str:
    """Cut *text* to *max_chars*, marking the cut with an ellipsis."""
    if len(text) <= max_chars:
        return text
    return f"{text[: max_chars - 1]}…"


def strip_ansi_and_control(text: str) -> str:
    return _CONTROL_RE.sub("", _ANSI_RE.sub("", text))


def sanitize_display_text(text: str, max_chars: int = 20_000) -> str:
    """Strip terminal escapes and cap the length of text shown to users."""
    cleaned = strip_ansi_and_control(text)
    if len(cleaned) <= max_chars:
        return cleaned
    return f"{cleaned[:max_chars]}\n… [truncated]"


def debug_enabled() -> bool:
    return bool(os.environ.get(DEBUG_ENV))


def debug_trace(label: str, data: dict[str, Any] | None = None) -> None:
    """Write a single-line ``[pi-spawn]`` trace to stderr when debugging.

    Enabled by setting ``PI_SPAWN_DEBUG``.  Purely observational.
    """
    if not debug_enabled():
        return
    suffix = f" {json.dumps(data, default=str)}" if data else ""
    click.echo(f"[pi-spawn] {label}{suffix}", err=True)
