"""Subagent spawning: stream parsing, event interpretation and lifecycle."""

from subspawn.spawn.cancellation import CancellationController
from subspawn.spawn.events import AgentEvent
from subspawn.spawn.interpreter import EventInterpreter
from subspawn.spawn.launcher import build_args, build_env, spawn
from subspawn.spawn.models import (
    ProgressUpdate,
    SpawnConfig,
    SpawnResult,
    UsageStats,
)
from subspawn.spawn.parser import LineStreamParser, OutputLimitExceeded, decode_event
from subspawn.spawn.progress import ProgressState, render_progress
from subspawn.spawn.rpc import RpcInjector

__all__ = [
    "AgentEvent",
    "CancellationController",
    "EventInterpreter",
    "LineStreamParser",
    "OutputLimitExceeded",
    "ProgressState",
    "ProgressUpdate",
    "RpcInjector",
    "SpawnConfig",
    "SpawnResult",
    "UsageStats",
    "build_args",
    "build_env",
    "decode_event",
    "render_progress",
    "spawn",
]
