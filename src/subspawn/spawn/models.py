"""Pydantic v2 models for spawn configuration, usage and results."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Phase = Literal["booting", "exploring", "writing"]

#: Progress sink; receives a ProgressUpdate.
UpdateCallback = Callable[..., None]

#: Callable that expands template variables in a system prompt.
PromptInterpolator = Callable[[str, str], str]


class SpawnConfig(BaseModel):
    """Immutable per-invocation configuration for one subagent."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    cwd: str = Field(description="Working directory for the child process")
    task: str = Field(description="Task text given to the subagent")
    model: str | None = Field(default=None, description="Model identifier")
    builtin_tools: list[str] | None = Field(
        default=None,
        description="Built-in tools the subagent may use (--tools)",
    )
    extension_tools: list[str] | None = Field(
        default=None,
        description="Extension tools exported via PI_INCLUDE_TOOLS",
    )
    system_prompt: str | None = Field(
        default=None,
        description="System prompt body appended via a temp file",
    )
    signal: asyncio.Event | None = Field(
        default=None,
        description="Cancellation signal; setting it terminates the subagent",
    )
    on_update: UpdateCallback | None = Field(
        default=None,
        description="Progress sink receiving ProgressUpdate snapshots",
    )
    follow_up: str | None = Field(
        default=None,
        description="Follow-up message; switches to interactive (RPC) transport",
    )
    label: str = Field(
        default="Subagent",
        description="Noun used in progress headers",
    )
    interpolate: PromptInterpolator | None = Field(
        default=None,
        description="Expands template variables in system_prompt (prompt, cwd)",
    )

    @property
    def interactive(self) -> bool:
        return bool(self.follow_up)


class UsageStats(BaseModel):
    """Token, cost and turn totals accumulated over one spawn."""

    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0
    cost: float = 0.0
    context_tokens: int = Field(
        default=0,
        description="Most recent total context size (a snapshot, not a sum)",
    )
    turns: int = 0


class SpawnResult(BaseModel):
    """Everything a finished (or in-flight) spawn produced."""

    exit_code: int = 0
    messages: list[dict[str, Any]] = Field(default_factory=list)
    stderr: str = ""
    usage: UsageStats = Field(default_factory=UsageStats)
    model: str | None = None
    stop_reason: str | None = None
    error_message: str | None = None
    result_text: str | None = Field(
        default=None,
        description="Final text from a 'result' event; wins over assistant text",
    )
    termination_reason: str | None = Field(
        default=None,
        description="Which trigger terminated the process, if any",
    )

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.error_message

    @property
    def final_text(self) -> str:
        """The authoritative answer: the result event, else the last reply."""
        if self.result_text and self.result_text.strip():
            return self.result_text.strip()
        for message in reversed(self.messages):
            if message.get("role") == "assistant":
                text = message_text(message)
                if text:
                    return text
        return ""


class ProgressUpdate(BaseModel):
    """One snapshot handed to the progress sink."""

    text: str
    phase: Literal["booting", "exploring", "writing", "assistant", "tool_result"]
    started_tools: int = 0
    completed_tools: int = 0
    failed_tools: int = 0
    current_action: str | None = None
    stop_reason: str | None = None
    result: SpawnResult


def message_text(message: dict[str, Any]) -> str:
    """Join the text parts of a message's content."""
    content = message.get("content")
    if isinstance(content, str):
        return content.strip()
    if not isinstance(content, list):
        return ""
    parts = [
        part["text"]
        for part in content
        if isinstance(part, dict)
        and part.get("type") == "text"
        and isinstance(part.get("text"), str)
    ]
    return "\n".join(parts).strip()
