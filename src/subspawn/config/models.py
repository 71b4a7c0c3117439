"""Pydantic v2 models for subspawn.yaml configuration."""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field, model_validator

from subspawn.constants import (
    DEFAULT_BIN,
    GRACE_PERIOD,
    HEARTBEAT_INTERVAL,
    MAX_STDERR_BUFFER,
    MAX_STDOUT_BUFFER,
)


class RunnerConfig(BaseModel):
    """How the agent executable is launched and supervised."""

    model_config = ConfigDict(extra="forbid")

    bin: str | None = Field(
        default=None,
        description="Agent executable; falls back to $PI_BIN, then 'pi'",
    )
    grace_period: float = Field(
        default=GRACE_PERIOD,
        gt=0,
        description="Seconds between SIGTERM and SIGKILL",
    )
    heartbeat: float = Field(
        default=HEARTBEAT_INTERVAL,
        gt=0,
        description="Seconds between progress re-renders",
    )

    def resolve_bin(self) -> str:
        return self.bin or os.getenv("PI_BIN") or DEFAULT_BIN


class LimitsConfig(BaseModel):
    """Output size limits enforced on each subagent."""

    model_config = ConfigDict(extra="forbid")

    stdout_bytes: int = Field(
        default=MAX_STDOUT_BUFFER,
        gt=0,
        description="Max buffered stdout before the subagent is killed",
    )
    stderr_bytes: int = Field(
        default=MAX_STDERR_BUFFER,
        gt=0,
        description="Max captured stderr before the subagent is killed",
    )


class AgentPreset(BaseModel):
    """A named subagent preset (tools, model, prompt)."""

    model_config = ConfigDict(extra="forbid")

    label: str | None = Field(
        default=None,
        description="Noun used in progress headers, e.g. 'Librarian'",
    )
    model: str | None = Field(default=None, description="Model identifier")
    tools: list[str] | None = Field(
        default=None,
        description="Built-in tools the subagent may use",
    )
    extension_tools: list[str] | None = Field(
        default=None,
        description="Extension tools passed via PI_INCLUDE_TOOLS",
    )
    system_prompt: str | None = Field(
        default=None,
        description="System prompt text or path to a prompt file",
    )
    follow_up: str | None = Field(
        default=None,
        description="Follow-up message injected after the first turn",
    )


class SpawnerSettings(BaseModel):
    """Top-level subspawn.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1", description="Config schema version")
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    agents: dict[str, AgentPreset] = Field(
        default_factory=dict,
        description="Named subagent presets",
    )

    @model_validator(mode="after")
    def _validate_version(self) -> SpawnerSettings:
        if self.version != "1":
            msg = f"Unsupported config version '{self.version}' — expected '1'"
            raise ValueError(msg)
        return self
