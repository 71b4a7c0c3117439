"""Tests for the subspawn CLI."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import yaml
from click.testing import CliRunner

from subspawn import __version__
from subspawn.cli import cli
from subspawn.commands.init import CONFIG_FILENAME, TEMPLATE_YAML
from subspawn.config.models import SpawnerSettings
from subspawn.spawn.models import SpawnConfig, SpawnResult, UsageStats

_SPAWN = "subspawn.commands.run.spawn"


def _ok_result(text: str = "The loader lives in config/parser.py.") -> SpawnResult:
    return SpawnResult(
        messages=[{"role": "assistant", "content": [{"type": "text", "text": text}]}],
        usage=UsageStats(input=10, output=5, turns=1),
    )


def _spawned_config(mock_spawn: AsyncMock) -> SpawnConfig:
    return mock_spawn.call_args.args[0]


# ------------------------------------------------------------------ #
# Group
# ------------------------------------------------------------------ #


def test_help() -> None:
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "subspawn" in result.output
    assert "run" in result.output
    assert "init" in result.output


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"subspawn, version {__version__}" in result.output


# ------------------------------------------------------------------ #
# init
# ------------------------------------------------------------------ #


class TestInit:
    def test_creates_files(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 0
            assert "Created subspawn.yaml" in result.output
            assert Path(CONFIG_FILENAME).read_text(encoding="utf-8") == TEMPLATE_YAML
            assert Path(".env.example").is_file()

    def test_refuses_overwrite(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path(CONFIG_FILENAME).write_text("version: '1'\n", encoding="utf-8")
            result = runner.invoke(cli, ["init"])
            assert result.exit_code == 1
            assert "already exists" in result.output

    def test_force_overwrites(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path(CONFIG_FILENAME).write_text("version: '1'\n", encoding="utf-8")
            result = runner.invoke(cli, ["init", "--force"])
            assert result.exit_code == 0
            assert Path(CONFIG_FILENAME).read_text(encoding="utf-8") == TEMPLATE_YAML

    def test_template_is_valid_config(self) -> None:
        settings = SpawnerSettings.model_validate(yaml.safe_load(TEMPLATE_YAML))
        assert set(settings.agents) == {"finder", "reviewer"}
        assert settings.agents["reviewer"].follow_up


# ------------------------------------------------------------------ #
# run
# ------------------------------------------------------------------ #


class TestRun:
    def test_prints_final_text(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            with patch(_SPAWN, AsyncMock(return_value=_ok_result())) as mock_spawn:
                result = runner.invoke(cli, ["run", "-q", "where is the loader?"])
            assert result.exit_code == 0
            assert "The loader lives in config/parser.py." in result.output
            config = _spawned_config(mock_spawn)
            assert config.task == "where is the loader?"
            assert config.on_update is None
            assert config.signal is not None
            assert not config.interactive

    def test_options_forwarded(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            with patch(_SPAWN, AsyncMock(return_value=_ok_result())) as mock_spawn:
                result = runner.invoke(
                    cli,
                    [
                        "run", "-q", "task",
                        "--model", "anthropic/claude-haiku",
                        "--tools", "read, grep",
                        "--extension-tools", "read_github",
                        "--follow-up", "now summarize",
                    ],
                )
            assert result.exit_code == 0
            config = _spawned_config(mock_spawn)
            assert config.model == "anthropic/claude-haiku"
            assert config.builtin_tools == ["read", "grep"]
            assert config.extension_tools == ["read_github"]
            assert config.follow_up == "now summarize"
            assert config.interactive

    def test_agent_preset_applied(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            runner.invoke(cli, ["init"])
            with patch(_SPAWN, AsyncMock(return_value=_ok_result())) as mock_spawn:
                result = runner.invoke(cli, ["run", "-q", "-a", "finder", "task"])
            assert result.exit_code == 0
            config = _spawned_config(mock_spawn)
            assert config.label == "Finder"
            assert config.builtin_tools == ["read", "grep", "find", "ls"]
            assert "read-only code search agent" in (config.system_prompt or "")

    def test_cli_option_overrides_preset(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            runner.invoke(cli, ["init"])
            with patch(_SPAWN, AsyncMock(return_value=_ok_result())) as mock_spawn:
                runner.invoke(cli, ["run", "-q", "-a", "finder", "--tools", "ls", "task"])
            assert _spawned_config(mock_spawn).builtin_tools == ["ls"]

    def test_unknown_agent(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            runner.invoke(cli, ["init"])
            with patch(_SPAWN, AsyncMock()) as mock_spawn:
                result = runner.invoke(cli, ["run", "-a", "ghost", "task"])
            assert result.exit_code == 1
            assert "unknown agent 'ghost'" in result.output
            assert "finder" in result.output
            mock_spawn.assert_not_called()

    def test_bad_config_file(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("bad.yaml").write_text("version: '9'\n", encoding="utf-8")
            with patch(_SPAWN, AsyncMock()) as mock_spawn:
                result = runner.invoke(cli, ["run", "-f", "bad.yaml", "task"])
            assert result.exit_code == 1
            assert "Unsupported config version '9'" in result.output
            mock_spawn.assert_not_called()

    def test_system_prompt_file(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            Path("prompt.md").write_text("---\nname: x\n---\nBe terse.\n", encoding="utf-8")
            with patch(_SPAWN, AsyncMock(return_value=_ok_result())) as mock_spawn:
                runner.invoke(cli, ["run", "-q", "--system-prompt", "prompt.md", "task"])
            assert _spawned_config(mock_spawn).system_prompt == "Be terse."

    def test_json_output(self) -> None:
        runner = CliRunner()
        with runner.isolated_filesystem():
            with patch(_SPAWN, AsyncMock(return_value=_ok_result("done"))):
                result = runner.invoke(cli, ["run", "-q", "--json", "task"])
            assert result.exit_code == 0
            payload = json.loads(result.output)
            assert payload["final_text"] == "done"
            assert payload["usage"]["input"] == 10

    def test_failure_exit_code(self) -> None:
        failed = SpawnResult(exit_code=143, stderr="boom\n")
        runner = CliRunner()
        with runner.isolated_filesystem():
            with patch(_SPAWN, AsyncMock(return_value=failed)):
                result = runner.invoke(cli, ["run", "-q", "task"])
            assert result.exit_code == 143
            assert "subagent exited with code 143" in result.output
            assert "boom" in result.output

    def test_error_message_reported(self) -> None:
        failed = SpawnResult(exit_code=1, error_message="Cannot start 'pi'")
        runner = CliRunner()
        with runner.isolated_filesystem():
            with patch(_SPAWN, AsyncMock(return_value=failed)):
                result = runner.invoke(cli, ["run", "-q", "task"])
            assert result.exit_code == 1
            assert "Error: Cannot start 'pi'" in result.output
