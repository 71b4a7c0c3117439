"""Load, validate, and resolve subspawn.yaml configuration."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from subspawn.config.models import SpawnerSettings
from subspawn.prompts import read_prompt_file

DEFAULT_CONFIG_NAME = "subspawn.yaml"

SUPPORTED_VERSION = "1"

_AGENT_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")

_LIST_FIELDS = ("tools", "extension_tools")


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> SpawnerSettings:
    """Load and validate a subspawn.yaml file.

    Args:
        path: Explicit config file path. If None, looks for
              subspawn.yaml in the current directory.

    Returns:
        A validated SpawnerSettings instance.

    Raises:
        ConfigError: On missing file, bad YAML, an unsupported version,
            a malformed agent preset, or validation failure.
    """
    config_path = _resolve_path(path)
    raw = _read_yaml(config_path)
    _normalize_version(raw, config_path.name)
    _normalize_agents(raw)
    _resolve_prompt_references(raw, config_path.parent)
    _load_env(config_path.parent)
    return _validate(raw)


def find_config() -> Path | None:
    """Return ./subspawn.yaml if it exists."""
    default = Path.cwd() / DEFAULT_CONFIG_NAME
    return default if default.is_file() else None


def _resolve_path(path: Path | None) -> Path:
    if path is not None:
        resolved = Path(path)
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise ConfigError(msg)
        return resolved

    default = find_config()
    if default is None:
        msg = (
            f"No {DEFAULT_CONFIG_NAME} found in {Path.cwd()}. "
            "Run `subspawn init` to create one."
        )
        raise ConfigError(msg)
    return default


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read config file: {exc}"
        raise ConfigError(msg) from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 1}, column {mark.column + 1})" if mark else ""
        msg = f"Invalid YAML in {path.name}{where}"
        raise ConfigError(msg) from exc

    # An empty file means "all defaults".
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)
    return data


def _normalize_version(raw: dict[str, Any], filename: str) -> None:
    """Accept ``version: 1`` as well as ``version: "1"``; reject anything else."""
    if "version" not in raw:
        return
    version = raw["version"]
    if isinstance(version, bool) or not isinstance(version, (str, int, float)):
        msg = f"Invalid version in {filename}: expected \"{SUPPORTED_VERSION}\""
        raise ConfigError(msg)
    if isinstance(version, float) and version.is_integer():
        version = int(version)
    text = str(version).strip()
    if text != SUPPORTED_VERSION:
        msg = (
            f"Unsupported config version '{text}' in {filename} "
            f"(this subspawn reads version \"{SUPPORTED_VERSION}\")"
        )
        raise ConfigError(msg)
    raw["version"] = text


def _normalize_agents(raw: dict[str, Any]) -> None:
    """Check preset names and shapes; allow ``tools: read, grep`` shorthand."""
    agents = raw.get("agents")
    if agents is None:
        raw.pop("agents", None)
        return
    if not isinstance(agents, dict):
        msg = f"'agents' must be a mapping of preset names, got {type(agents).__name__}"
        raise ConfigError(msg)

    for name in list(agents):
        if not isinstance(name, str) or not _AGENT_NAME_RE.match(name):
            msg = (
                f"Invalid agent name {name!r}: use letters, digits, '-' or '_' "
                "so it can be passed to --agent"
            )
            raise ConfigError(msg)

        preset = agents[name]
        if preset is None:
            agents[name] = {}
            continue
        if not isinstance(preset, dict):
            msg = f"Agent '{name}' must be a mapping, got {type(preset).__name__}"
            raise ConfigError(msg)

        for field in _LIST_FIELDS:
            value = preset.get(field)
            if isinstance(value, str):
                preset[field] = [item.strip() for item in value.split(",") if item.strip()]


def _resolve_prompt_references(raw: dict[str, Any], base_dir: Path) -> None:
    for name, preset in raw.get("agents", {}).items():
        prompt = preset.get("system_prompt")
        if not isinstance(prompt, str):
            continue
        if not (prompt.startswith("./") or prompt.startswith("/")):
            continue

        prompt_path = (base_dir / prompt).resolve()
        if not prompt_path.is_relative_to(base_dir.resolve()):
            msg = f"Prompt file for agent '{name}' escapes project directory: {prompt}"
            raise ConfigError(msg)
        if not prompt_path.is_file():
            msg = f"Prompt file not found for agent '{name}': {prompt}"
            raise ConfigError(msg)
        try:
            preset["system_prompt"] = read_prompt_file(prompt_path)
        except OSError as exc:
            msg = f"Cannot read prompt file for agent '{name}': {exc}"
            raise ConfigError(msg) from exc


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _describe_error(err: Any) -> str:
    ctx = err.get("ctx") or {}
    match err["type"]:
        case "missing":
            return "This field is required"
        case "extra_forbidden":
            return "Unknown setting"
        case "greater_than":
            return f"Must be greater than {ctx.get('gt')}"
        case "list_type":
            return "Expected a list, e.g. [read, grep]"
        case _:
            return f"Invalid value: {err['msg']}"


def _validate(raw: dict[str, Any]) -> SpawnerSettings:
    try:
        return SpawnerSettings.model_validate(raw)
    except ValidationError as exc:
        lines = [
            f"  {' → '.join(str(s) for s in err['loc']) or '(root)'}: {_describe_error(err)}"
            for err in exc.errors()
        ]
        msg = "Config validation failed:\n" + "\n".join(lines)
        raise ConfigError(msg) from exc
