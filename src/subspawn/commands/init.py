"""subspawn init — scaffold a subspawn.yaml in the current directory."""

from __future__ import annotations

from pathlib import Path

import click

CONFIG_FILENAME = "subspawn.yaml"
ENV_EXAMPLE_FILENAME = ".env.example"

TEMPLATE_YAML = """\
# subspawn configuration
version: "1"

# How the agent executable is launched (bin defaults to $PI_BIN, then 'pi')
runner:
  # bin: pi
  grace_period: 5.0   # seconds between SIGTERM and SIGKILL
  heartbeat: 1.5      # seconds between progress refreshes

# Output limits — the subagent is terminated when exceeded
limits:
  stdout_bytes: 2097152
  stderr_bytes: 524288

# Named presets, used with `subspawn run --agent <name>`
agents:
  # A read-only explorer for quick codebase questions
  finder:
    label: Finder
    tools: [read, grep, find, ls]
    system_prompt: |
      You are a fast, read-only code search agent for this repository.
      Answer with file paths and line numbers.

  # Explores first, then receives the report format as a follow-up
  reviewer:
    label: Reviewer
    tools: [read, grep, find, ls, bash]
    follow_up: |
      Now write your review as a markdown report with sections
      Summary, Issues and Suggestions.
"""

TEMPLATE_ENV_EXAMPLE = """\
# Environment for subspawn. Copy this file to .env next to subspawn.yaml.

# Agent executable to launch (default: pi)
PI_BIN=

# Set to 1 to print [pi-spawn] debug traces to stderr
PI_SPAWN_DEBUG=
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing subspawn.yaml if it exists.",
)
def init(force: bool) -> None:
    """Scaffold a subspawn.yaml in the current directory."""
    cwd = Path.cwd()
    config_path = cwd / CONFIG_FILENAME
    env_example_path = cwd / ENV_EXAMPLE_FILENAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{CONFIG_FILENAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {CONFIG_FILENAME}: {exc}") from exc
    click.echo(f"  Created {CONFIG_FILENAME}")

    if not env_example_path.exists() or force:
        try:
            env_example_path.write_text(TEMPLATE_ENV_EXAMPLE, encoding="utf-8")
        except OSError as exc:
            raise click.ClickException(
                f"Cannot write {ENV_EXAMPLE_FILENAME}: {exc}"
            ) from exc
        click.echo(f"  Created {ENV_EXAMPLE_FILENAME}")
    else:
        click.echo(f"  Skipped {ENV_EXAMPLE_FILENAME} (already exists)")

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Edit {CONFIG_FILENAME} to define your agent presets")
    click.echo('  2. Run `subspawn run --agent finder "where is X defined?"`')
