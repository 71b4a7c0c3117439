"""Configuration models and parser for subspawn.yaml."""

from subspawn.config.models import (
    AgentPreset,
    LimitsConfig,
    RunnerConfig,
    SpawnerSettings,
)
from subspawn.config.parser import ConfigError, find_config, load_config

__all__ = [
    "AgentPreset",
    "ConfigError",
    "LimitsConfig",
    "RunnerConfig",
    "SpawnerSettings",
    "find_config",
    "load_config",
]
