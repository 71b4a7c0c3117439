"""Event interpreter — folds agent events into usage, messages and progress."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from subspawn.helpers import sanitize_display_text
from subspawn.spawn.events import (
    AgentEvent,
    MessageEndEvent,
    MessageUpdateEvent,
    ResultEvent,
    ToolExecutionEndEvent,
    ToolExecutionStartEvent,
    ToolResultEndEvent,
)
from subspawn.spawn.models import (
    ProgressUpdate,
    SpawnResult,
    UpdateCallback,
    UsageStats,
    message_text,
)
from subspawn.spawn.progress import (
    SYNTHESIZING_LABEL,
    ProgressState,
    describe_tool_call,
    render_progress,
)

logger = logging.getLogger(__name__)

#: Called with the stop reason of every completed assistant message.
TurnListener = Callable[[str | None], None]

_TEXT_UPDATE_TYPES = frozenset({"text_start", "text_delta"})


def _count(value: Any) -> int:
    """Coerce a usage figure to a non-negative int (junk counts as 0)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return max(0, int(value))


def _cost(value: Any) -> float:
    if isinstance(value, dict):
        value = value.get("total")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return max(0.0, float(value))


def accumulate_usage(stats: UsageStats, usage: dict[str, Any]) -> None:
    """Add one message's usage figures into *stats*.

    Token and cost fields are summed; ``totalTokens`` replaces the
    context snapshot.
    """
    stats.input += _count(usage.get("input"))
    stats.output += _count(usage.get("output"))
    stats.cache_read += _count(usage.get("cacheRead"))
    stats.cache_write += _count(usage.get("cacheWrite"))
    stats.cost += _cost(usage.get("cost"))
    if "totalTokens" in usage:
        stats.context_tokens = _count(usage.get("totalTokens"))


class EventInterpreter:
    """Applies decoded events to one spawn's result and progress state.

    Owns the per-invocation state that must survive across chunks: the
    partial :class:`SpawnResult`, the :class:`ProgressState`, the map of
    in-flight tool calls, and the last emitted snapshot used to suppress
    duplicate heartbeat renders.
    """

    def __init__(
        self,
        *,
        label: str = "Subagent",
        on_update: UpdateCallback | None = None,
        result: SpawnResult | None = None,
        progress: ProgressState | None = None,
    ) -> None:
        self.result = result if result is not None else SpawnResult()
        self.progress = progress if progress is not None else ProgressState()
        self._label = label
        self._on_update = on_update
        self._last_progress_text: str | None = None
        self._active_actions: dict[str, str] = {}
        self._turn_listeners: list[TurnListener] = []

    def add_turn_listener(self, listener: TurnListener) -> None:
        self._turn_listeners.append(listener)

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def handle(self, event: AgentEvent) -> None:
        """Fold a single event into the accumulated state."""
        match event:
            case ToolExecutionStartEvent():
                self._on_tool_start(event)
            case ToolExecutionEndEvent():
                self._on_tool_end(event)
            case MessageUpdateEvent():
                self._on_message_update(event)
            case MessageEndEvent():
                self._on_message_end(event)
            case ToolResultEndEvent():
                self._on_tool_result_end(event)
            case ResultEvent():
                if isinstance(event.result, str):
                    self.result.result_text = event.result
            case _:
                # "response" acks carry nothing we track.
                pass

    def _on_tool_start(self, event: ToolExecutionStartEvent) -> None:
        progress = self.progress
        progress.started_tools += 1
        if progress.phase == "booting":
            progress.phase = "exploring"

        action = describe_tool_call(event.tool_name, event.args)
        call_id = event.tool_call_id
        key = str(call_id) if call_id is not None else f"tool-{progress.started_tools}"
        self._active_actions[key] = action

        progress.current_action = action
        self.emit_progress(force=True)

    def _on_tool_end(self, event: ToolExecutionEndEvent) -> None:
        progress = self.progress
        progress.completed_tools += 1
        failed = bool(event.is_error)
        if failed:
            progress.failed_tools += 1

        key = str(event.tool_call_id) if event.tool_call_id is not None else ""
        action = self._active_actions.pop(key, None)
        if action is None:
            action = describe_tool_call(event.tool_name, event.args)

        progress.add_recent(f"{'✗' if failed else '✓'} {action}")
        progress.current_action = None
        self.emit_progress(force=True)

    def _on_message_update(self, event: MessageUpdateEvent) -> None:
        if event.update_type not in _TEXT_UPDATE_TYPES:
            return
        if self.progress.phase != "writing":
            self.progress.phase = "writing"
            self.progress.current_action = SYNTHESIZING_LABEL
            self.emit_progress(force=True)

    def _on_message_end(self, event: MessageEndEvent) -> None:
        message = event.message
        if message is None:
            return
        result = self.result
        result.messages.append(message)
        if message.get("role") != "assistant":
            return

        result.usage.turns += 1
        usage = message.get("usage")
        if isinstance(usage, dict):
            accumulate_usage(result.usage, usage)

        model = message.get("model")
        if result.model is None and isinstance(model, str) and model:
            result.model = model
        stop_reason = message.get("stopReason")
        if isinstance(stop_reason, str) and stop_reason:
            result.stop_reason = stop_reason
        error_message = message.get("errorMessage")
        if isinstance(error_message, str) and error_message:
            result.error_message = error_message

        text = sanitize_display_text(message_text(message))
        if text:
            self.progress.phase = "writing"
            self.progress.current_action = None
            self._notify(text, "assistant", stop_reason=result.stop_reason)

        for listener in self._turn_listeners:
            listener(stop_reason if isinstance(stop_reason, str) else None)

    def _on_tool_result_end(self, event: ToolResultEndEvent) -> None:
        if event.message is None:
            return
        self.result.messages.append(event.message)
        if self._on_update is not None:
            self._notify(render_progress(self.progress, self._label), "tool_result")

    # ------------------------------------------------------------------ #
    # Progress emission
    # ------------------------------------------------------------------ #

    def emit_progress(self, force: bool = False) -> bool:
        """Render progress and hand it to the sink.

        An unforced render is dropped when its text equals the last one
        emitted.  Returns True if the sink was called.
        """
        if self._on_update is None:
            return False
        text = render_progress(self.progress, self._label)
        if not force and text == self._last_progress_text:
            return False
        self._last_progress_text = text
        self._notify(text, self.progress.phase)
        return True

    def _notify(
        self,
        text: str,
        phase: str,
        stop_reason: str | None = None,
    ) -> None:
        if self._on_update is None:
            return
        progress = self.progress
        update = ProgressUpdate(
            text=text,
            phase=phase,
            started_tools=progress.started_tools,
            completed_tools=progress.completed_tools,
            failed_tools=progress.failed_tools,
            current_action=progress.current_action,
            stop_reason=stop_reason,
            result=self.result.model_copy(deep=True),
        )
        try:
            self._on_update(update)
        except Exception:
            logger.exception("Progress callback raised; continuing")
