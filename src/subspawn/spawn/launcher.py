"""Process launcher — spawns one subagent and collects its SpawnResult."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import logging
import os
import re
import shutil
import tempfile
from pathlib import Path

from subspawn.config.models import SpawnerSettings
from subspawn.constants import (
    EXIT_FAILURE,
    INCLUDE_TOOLS_ENV,
    READ_CHUNK_BYTES,
    READ_COMPACT_ENV,
)
from subspawn.helpers import debug_trace, format_stderr_preview
from subspawn.spawn.cancellation import (
    ABORTED,
    AGENT_ERROR,
    STDERR_OVERFLOW,
    STDOUT_OVERFLOW,
    TURNS_COMPLETE,
    CancellationController,
)
from subspawn.spawn.interpreter import EventInterpreter
from subspawn.spawn.models import SpawnConfig, SpawnResult
from subspawn.spawn.parser import LineStreamParser, OutputLimitExceeded
from subspawn.spawn.rpc import RpcInjector

logger = logging.getLogger(__name__)

_SAFE_LABEL_RE = re.compile(r"[^\w.-]+")

_FAILURE_REASONS = {STDOUT_OVERFLOW, STDERR_OVERFLOW, AGENT_ERROR}


def build_args(config: SpawnConfig, prompt_path: Path | None = None) -> list[str]:
    """Build the agent's argument list (without the executable).

    One-shot runs pass the task as the trailing argument; interactive runs
    use RPC mode and receive the task over stdin instead.
    """
    if config.interactive:
        args = ["--mode", "rpc", "--no-session"]
    else:
        args = ["--mode", "json", "-p", "--no-session"]

    if config.model:
        args.extend(["--model", config.model])
    if config.builtin_tools:
        args.extend(["--tools", ",".join(config.builtin_tools)])
    if prompt_path is not None:
        args.extend(["--append-system-prompt", str(prompt_path)])

    if not config.interactive:
        args.append(f"Task: {config.task}")
    return args


def build_env(
    config: SpawnConfig,
    base: dict[str, str] | None = None,
) -> dict[str, str]:
    """Parent environment plus the agent's compact-read and tool overrides."""
    env = dict(os.environ if base is None else base)
    env[READ_COMPACT_ENV] = "1"
    if config.extension_tools is not None:
        env[INCLUDE_TOOLS_ENV] = ",".join(config.extension_tools)
    return env


def write_prompt_file(label: str, prompt: str) -> tuple[Path, Path]:
    """Write *prompt* to a private temp dir; returns ``(dir, file)``."""
    tmp_dir = Path(tempfile.mkdtemp(prefix="pi-subagent-"))
    safe_name = _SAFE_LABEL_RE.sub("_", label)
    file_path = tmp_dir / f"prompt-{safe_name}.md"
    fd = os.open(file_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(prompt)
    return tmp_dir, file_path


def normalize_returncode(returncode: int | None) -> int:
    """Map asyncio's negative signal codes to shell-style ``128 + signum``."""
    if returncode is None:
        return 0
    if returncode < 0:
        return 128 - returncode
    return returncode


async def spawn(
    config: SpawnConfig,
    settings: SpawnerSettings | None = None,
) -> SpawnResult:
    """Run one subagent to completion and return its result.

    Never raises for transport, protocol, limit or cancellation failures;
    those resolve into a populated :class:`SpawnResult`.  The temporary
    system-prompt file is always removed.
    """
    settings = settings or SpawnerSettings()
    tmp_dir: Path | None = None
    try:
        prompt_path: Path | None = None
        if config.system_prompt and config.system_prompt.strip():
            body = config.system_prompt
            if config.interpolate is not None:
                body = config.interpolate(body, config.cwd)
            try:
                tmp_dir, prompt_path = write_prompt_file("subagent", body)
            except OSError as exc:
                return _failed(SpawnResult(), f"Cannot write system prompt: {exc}")

        launcher = SubagentLauncher(config, settings)
        return await launcher.run(build_args(config, prompt_path), build_env(config))
    finally:
        if tmp_dir is not None:
            shutil.rmtree(tmp_dir, ignore_errors=True)


def _failed(result: SpawnResult, error_msg: str) -> SpawnResult:
    logger.error("%s", error_msg)
    result.exit_code = EXIT_FAILURE
    result.error_message = error_msg
    result.stderr = f"{result.stderr}{error_msg}\n"
    return result


class SubagentLauncher:
    """Owns one child process and wires its streams to the interpreter.

    One instance per invocation; nothing is shared between concurrent
    spawns.
    """

    def __init__(self, config: SpawnConfig, settings: SpawnerSettings) -> None:
        self._config = config
        self._settings = settings
        self.result = SpawnResult()
        self._interpreter = EventInterpreter(
            label=config.label,
            on_update=config.on_update,
            result=self.result,
        )
        self._parser = LineStreamParser(max_buffer=settings.limits.stdout_bytes)
        self._controller: CancellationController | None = None

    async def run(self, args: list[str], env: dict[str, str]) -> SpawnResult:
        config = self._config
        runner = self._settings.runner
        agent_bin = runner.resolve_bin()
        mode = "rpc" if config.interactive else "json"
        logger.info("Spawning %s (%s mode): %s", agent_bin, mode, config.task[:50])

        if not Path(config.cwd).is_dir():
            return _failed(
                self.result, f"Working directory does not exist: {config.cwd}"
            )

        try:
            proc = await asyncio.create_subprocess_exec(
                agent_bin,
                *args,
                cwd=config.cwd,
                stdin=(
                    asyncio.subprocess.PIPE
                    if config.interactive
                    else asyncio.subprocess.DEVNULL
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError as exc:
            missing = exc.filename or agent_bin
            return _failed(
                self.result, f"Cannot start '{agent_bin}': {missing} not found"
            )
        except OSError as exc:
            return _failed(self.result, f"Failed to spawn '{agent_bin}': {exc}")
        except ValueError as exc:
            # e.g. a NUL byte in argv or the environment
            return _failed(self.result, f"Failed to spawn '{agent_bin}': {exc}")

        controller = CancellationController(proc, grace_period=runner.grace_period)
        self._controller = controller
        self._interpreter.emit_progress(force=True)
        controller.watch(config.signal)

        heartbeat = asyncio.create_task(self._heartbeat(runner.heartbeat))
        try:
            if config.interactive and proc.stdin is not None:
                injector = RpcInjector(
                    proc.stdin,
                    controller,
                    task=config.task,
                    follow_up=config.follow_up,
                )
                self._interpreter.add_turn_listener(injector.on_turn_end)
                await injector.start()

            await asyncio.gather(
                self._pump_stdout(proc.stdout),
                self._pump_stderr(proc.stderr),
            )
            returncode = await proc.wait()
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(proc.wait(), timeout=runner.grace_period)
            raise
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat
            await controller.close()
            if proc.stdin is not None and not proc.stdin.is_closing():
                with contextlib.suppress(OSError):
                    proc.stdin.close()

        return self._finalize(returncode)

    # ------------------------------------------------------------------ #
    # Stream pumps
    # ------------------------------------------------------------------ #

    async def _pump_stdout(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        overflowed = False
        while chunk := await stream.read(READ_CHUNK_BYTES):
            if overflowed:
                continue
            try:
                events = self._parser.feed(chunk)
            except OutputLimitExceeded as exc:
                overflowed = True
                self.result.stderr += f"\n{exc}"
                self._terminate(STDOUT_OVERFLOW)
                continue
            for event in events:
                self._interpreter.handle(event)

        if not overflowed:
            for event in self._parser.close():
                self._interpreter.handle(event)

    async def _pump_stderr(self, stream: asyncio.StreamReader | None) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        truncated = False
        while chunk := await stream.read(READ_CHUNK_BYTES):
            if not truncated:
                truncated = self._append_stderr(decoder.decode(chunk))
        if not truncated:
            self._append_stderr(decoder.decode(b"", final=True))

    def _append_stderr(self, text: str) -> bool:
        """Append decoded stderr; returns True once the limit is hit."""
        limit = self._settings.limits.stderr_bytes
        combined = self.result.stderr + text
        if len(combined) <= limit:
            self.result.stderr = combined
            return False
        self.result.stderr = f"{combined[:limit]}\n… [stderr truncated]"
        self._terminate(STDERR_OVERFLOW)
        return True

    async def _heartbeat(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self._interpreter.emit_progress(force=False)

    def _terminate(self, reason: str) -> None:
        if self._controller is not None:
            self._controller.terminate(reason)

    # ------------------------------------------------------------------ #
    # Result assembly
    # ------------------------------------------------------------------ #

    def _finalize(self, returncode: int | None) -> SpawnResult:
        result = self.result
        reason = self._controller.reason if self._controller is not None else None
        result.termination_reason = reason
        result.exit_code = normalize_returncode(returncode)

        if reason == ABORTED:
            result.exit_code = EXIT_FAILURE
            result.stop_reason = "aborted"
            logger.info("Subagent cancelled")
        elif reason in _FAILURE_REASONS and result.exit_code == 0:
            result.exit_code = EXIT_FAILURE
        elif reason == TURNS_COMPLETE and self._config.interactive:
            # We sent the SIGTERM ourselves after the last expected turn.
            result.exit_code = 0

        debug_trace(
            "exit",
            {"returncode": returncode, "exitCode": result.exit_code, "reason": reason},
        )
        if result.exit_code != 0 and reason != ABORTED:
            preview = format_stderr_preview(result.stderr)
            logger.error(
                "Subagent exited with code %d%s",
                result.exit_code,
                f": {preview}" if preview else "",
            )
        return result
