"""Pydantic v2 models for the agent's stdout event protocol.

Each line the child writes to stdout is one JSON object tagged by ``type``.
Only the tags below are interpreted; anything else decodes to ``None``.
Payload fields are kept loose (``Any``) because the child's messages are
forwarded verbatim and validated only where they are read.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag


class _EventBase(BaseModel):
    """Common config shared by every protocol event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ToolExecutionStartEvent(_EventBase):
    """The agent started running a tool."""

    type: Literal["tool_execution_start"] = "tool_execution_start"
    tool_name: Any = Field(default=None, alias="toolName")
    args: Any = Field(default=None)
    tool_call_id: Any = Field(default=None, alias="toolCallId")


class ToolExecutionEndEvent(_EventBase):
    """A tool call finished (successfully or not)."""

    type: Literal["tool_execution_end"] = "tool_execution_end"
    tool_name: Any = Field(default=None, alias="toolName")
    args: Any = Field(default=None)
    tool_call_id: Any = Field(default=None, alias="toolCallId")
    is_error: Any = Field(default=False, alias="isError")


class MessageUpdateEvent(_EventBase):
    """Streaming update to the in-flight assistant message."""

    type: Literal["message_update"] = "message_update"
    assistant_message_event: Any = Field(default=None, alias="assistantMessageEvent")

    @property
    def update_type(self) -> str | None:
        ame = self.assistant_message_event
        if isinstance(ame, dict) and isinstance(ame.get("type"), str):
            return ame["type"]
        return None


class MessageEndEvent(_EventBase):
    """A complete message (assistant, user or tool result)."""

    type: Literal["message_end"] = "message_end"
    message: dict[str, Any] | None = Field(default=None)


class ToolResultEndEvent(_EventBase):
    """A complete tool-result message."""

    type: Literal["tool_result_end"] = "tool_result_end"
    message: dict[str, Any] | None = Field(default=None)


class ResultEvent(_EventBase):
    """Final aggregated answer text."""

    type: Literal["result"] = "result"
    result: Any = Field(default=None)


class ResponseEvent(_EventBase):
    """Acknowledgement of an RPC command; carries nothing we use."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: Literal["response"] = "response"
    command: Any = Field(default=None)
    success: Any = Field(default=None)


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


AgentEvent = Annotated[
    Annotated[ToolExecutionStartEvent, Tag("tool_execution_start")]
    | Annotated[ToolExecutionEndEvent, Tag("tool_execution_end")]
    | Annotated[MessageUpdateEvent, Tag("message_update")]
    | Annotated[MessageEndEvent, Tag("message_end")]
    | Annotated[ToolResultEndEvent, Tag("tool_result_end")]
    | Annotated[ResultEvent, Tag("result")]
    | Annotated[ResponseEvent, Tag("response")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all recognised agent events."""
