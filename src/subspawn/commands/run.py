"""subspawn run — launch one subagent and print its final answer."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
from pathlib import Path
from typing import Any

import click

from subspawn.config.models import AgentPreset, SpawnerSettings
from subspawn.config.parser import ConfigError, find_config, load_config
from subspawn.helpers import format_stderr_preview
from subspawn.prompts import read_prompt_file
from subspawn.spawn.launcher import spawn
from subspawn.spawn.models import ProgressUpdate, SpawnConfig, SpawnResult


def _split_csv(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_settings(config_file: str | None) -> SpawnerSettings:
    path = Path(config_file) if config_file else find_config()
    if path is None:
        return SpawnerSettings()
    return load_config(path)


class _ProgressPrinter:
    """Echoes progress to stderr, skipping renders that only moved the spinner."""

    def __init__(self) -> None:
        self._last_phase: str | None = None
        self._last_body: str | None = None

    def __call__(self, update: ProgressUpdate) -> None:
        if update.phase in ("assistant", "tool_result"):
            return
        header, _, body = update.text.partition("\n")
        if update.phase == self._last_phase and body == self._last_body:
            return
        self._last_phase = update.phase
        self._last_body = body
        click.echo(f"{header}\n{body}\n", err=True)


@click.command()
@click.argument("task")
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option(
    "-a", "--agent", "agent_name", default=None, help="Agent preset from the config."
)
@click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False),
    default=".",
    show_default=True,
    help="Working directory for the subagent.",
)
@click.option("-m", "--model", default=None, help="Model identifier.")
@click.option("--tools", default=None, help="Comma-separated built-in tools.")
@click.option(
    "--extension-tools", default=None, help="Comma-separated extension tools."
)
@click.option(
    "--system-prompt",
    "system_prompt_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Markdown file appended to the system prompt.",
)
@click.option(
    "--follow-up",
    default=None,
    help="Message injected after the first turn (uses RPC mode).",
)
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON.")
@click.option("-q", "--quiet", is_flag=True, help="Do not print progress.")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose logging.")
def run(
    task: str,
    config_file: str | None,
    agent_name: str | None,
    cwd: str,
    model: str | None,
    tools: str | None,
    extension_tools: str | None,
    system_prompt_file: str | None,
    follow_up: str | None,
    as_json: bool,
    quiet: bool,
    verbose: bool,
) -> None:
    """Run TASK in a subagent and print its final answer."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    try:
        settings = _load_settings(config_file)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    preset = AgentPreset()
    if agent_name is not None:
        if agent_name not in settings.agents:
            available = ", ".join(sorted(settings.agents)) or "none"
            click.echo(
                f"Error: unknown agent '{agent_name}' (available: {available})",
                err=True,
            )
            raise SystemExit(1)
        preset = settings.agents[agent_name]

    system_prompt = preset.system_prompt
    if system_prompt_file:
        try:
            system_prompt = read_prompt_file(Path(system_prompt_file))
        except OSError as exc:
            raise click.ClickException(f"Cannot read system prompt: {exc}") from exc

    options: dict[str, Any] = {
        "cwd": str(Path(cwd).resolve()),
        "task": task,
        "model": model or preset.model,
        "builtin_tools": _split_csv(tools) if tools is not None else preset.tools,
        "extension_tools": (
            _split_csv(extension_tools)
            if extension_tools is not None
            else preset.extension_tools
        ),
        "system_prompt": system_prompt,
        "follow_up": follow_up or preset.follow_up,
        "label": preset.label or (agent_name.capitalize() if agent_name else "Subagent"),
        "on_update": None if quiet else _ProgressPrinter(),
    }

    result = asyncio.run(_run_spawn(options, settings))

    if as_json:
        payload = result.model_dump()
        payload["final_text"] = result.final_text
        click.echo(json.dumps(payload, indent=2, default=str))
    elif result.ok:
        click.echo(result.final_text)

    if not result.ok:
        error_msg = result.error_message or f"subagent exited with code {result.exit_code}"
        preview = format_stderr_preview(result.stderr)
        if preview and not result.error_message:
            error_msg += f". Stderr:\n  {preview}"
        click.echo(f"Error: {error_msg}", err=True)
        raise SystemExit(result.exit_code or 1)


async def _run_spawn(options: dict[str, Any], settings: SpawnerSettings) -> SpawnResult:
    """Run the spawn with Ctrl-C wired to its cancellation signal."""
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, cancel.set)
    try:
        return await spawn(SpawnConfig(signal=cancel, **options), settings)
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
            loop.remove_signal_handler(signal.SIGINT)
