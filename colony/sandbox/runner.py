"""Script runner — contained execution of external evolution scripts.

Every invocation walks the same path:

    REQUESTED -> PATH_VALIDATED -> PERMISSION_ENSURED -> SPAWNED -> RUNNING
      -> EXITED                                   (process finished on its own)
      -> OUTPUT_CEILING_HIT | TIMED_OUT -> TERMINATED   (sandbox killed it)
    -> RESOLVED

Security layers:
1. Path containment — the script must resolve inside the root, under
   one of the allow-listed top-level directories, with a .sh suffix
2. Permission normalization — readable is required; a missing execute
   bit is granted unless auto_chmod is off
3. Constrained environment — interpreter-tuning variables are blanked
4. Bounded capture — stdout+stderr share one buffer; exceeding the
   ceiling terminates the whole process group

Usage:
    runner = ScriptRunner(SandboxConfig(root=repo_root))
    output = await runner.execute(Mode.SCOUT, "evolution/scan.sh", {"max": 50})
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import stat
import time
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field

from colony.events.bus import (
    SANDBOX_EXITED,
    SANDBOX_REJECTED,
    SANDBOX_SPAWNED,
    SANDBOX_TERMINATED,
    EventBus,
    RejectedEvent,
    RunFinishedEvent,
    SpawnedEvent,
)
from colony.exceptions import (
    PathNotAllowedError,
    ScriptFailedError,
    ScriptNotExecutableError,
    SpawnError,
    UnsupportedScriptTypeError,
)
from colony.types import Mode, ScriptParams

_logger = logging.getLogger(__name__)

ALLOWED_DIRS = ("evolution", "dev-tools", "memory", "optimization")
SCRIPT_SUFFIX = ".sh"
DEFAULT_MAX_OUTPUT_BYTES = 200_000

# Blanked in the child environment so inherited interpreter tuning
# cannot change how the script runs.
NEUTRALIZED_ENV = {
    "BASH_ENV": "",
    "ENV": "",
    "PYTHONSTARTUP": "",
    "PYTHONPATH": "",
    "NODE_OPTIONS": "",
}

_READ_CHUNK = 4096
_TERMINATE_GRACE_S = 5.0
_DRAIN_GRACE_S = 2.0


class InvocationState(str, Enum):
    REQUESTED = "requested"
    PATH_VALIDATED = "path_validated"
    PERMISSION_ENSURED = "permission_ensured"
    SPAWNED = "spawned"
    RUNNING = "running"
    OUTPUT_CEILING_HIT = "output_ceiling_hit"
    TIMED_OUT = "timed_out"
    TERMINATED = "terminated"
    EXITED = "exited"
    RESOLVED = "resolved"


class SandboxConfig(BaseModel):
    """Configuration for the script sandbox."""

    root: Path = Path(".")
    allowed_dirs: list[str] = Field(default_factory=lambda: list(ALLOWED_DIRS))
    script_suffix: str = SCRIPT_SUFFIX
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    timeout_s: float | None = None
    auto_chmod: bool = True
    interpreter: str = "bash"

    @classmethod
    def from_settings(cls, settings: Any) -> SandboxConfig:
        return cls(
            root=settings.repo_root,
            max_output_bytes=settings.sandbox_max_output_bytes,
            timeout_s=settings.sandbox_timeout_seconds,
            auto_chmod=settings.sandbox_auto_chmod,
            interpreter=settings.sandbox_interpreter,
        )


class ScriptResult(BaseModel):
    """Outcome of one sandboxed script run."""

    script: str
    argv: list[str] = Field(default_factory=list)
    exit_code: int | None = None
    output: str = ""
    states: list[InvocationState] = Field(default_factory=list)
    terminated_reason: str = ""  # "output_ceiling", "timeout" or ""
    truncated: bool = False
    execution_time_ms: float = 0.0

    @property
    def terminated(self) -> bool:
        return InvocationState.TERMINATED in self.states

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 or self.terminated


class InvocationRequest(BaseModel):
    """A typed (mode, script, params) triple for direct dispatch.

    Params outside str/int/float/bool/None fail validation here instead
    of being dropped later.
    """

    mode: Mode
    script_path: str = Field(alias="scriptPath")
    params: ScriptParams = Field(default_factory=dict)

    model_config = {"populate_by_name": True}


def format_param(value: Any) -> str | None:
    """Render a primitive param as a CLI token. None for anything else."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, (int, str)):
        return str(value)
    return None


def build_args(mode: Mode | str, params: Mapping[str, Any] | None) -> list[str]:
    """``--mode <mode>`` followed by ``--<key> <value>`` per primitive param."""
    args = ["--mode", Mode(mode).value]
    for key, value in (params or {}).items():
        if value is None:
            continue
        token = format_param(value)
        if token is None:
            _logger.debug("Dropping non-primitive param '%s' (%s)", key, type(value).__name__)
            continue
        args.extend([f"--{key}", token])
    return args


class _BoundedCapture:
    """One byte buffer shared by stdout and stderr."""

    def __init__(self, limit: int) -> None:
        self._buf = bytearray()
        self._limit = limit
        self.overflowed = False

    def append(self, chunk: bytes) -> bool:
        """Add a chunk; True once the ceiling has been exceeded."""
        if not self.overflowed:
            self._buf.extend(chunk)
            if len(self._buf) > self._limit:
                self.overflowed = True
        return self.overflowed

    def text(self) -> str:
        return bytes(self._buf[:self._limit]).decode("utf-8", errors="replace")


class ScriptRunner:
    """Runs allow-listed shell scripts with bounded output.

    Never retries. Rejections, spawns and outcomes are published on the
    optional event bus; the audit trail records them from there.
    """

    def __init__(
        self,
        config: SandboxConfig | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self._config = config or SandboxConfig()
        self._root = Path(self._config.root).resolve()
        self._bus = event_bus

    @property
    def root(self) -> Path:
        return self._root

    @property
    def config(self) -> SandboxConfig:
        return self._config

    async def execute_scout(self, script_path: str, params: Mapping[str, Any] | None = None) -> str:
        return await self.execute(Mode.SCOUT, script_path, params)

    async def execute_adas(self, script_path: str, params: Mapping[str, Any] | None = None) -> str:
        return await self.execute(Mode.ADAS, script_path, params)

    async def execute_hybrid(self, script_path: str, params: Mapping[str, Any] | None = None) -> str:
        return await self.execute(Mode.HYBRID, script_path, params)

    async def execute(
        self, mode: Mode | str, script_path: str, params: Mapping[str, Any] | None = None,
    ) -> str:
        """Run a script in the given mode and return its captured output."""
        mode = Mode(mode)
        result = await self.run(script_path, build_args(mode, params), label=mode.value)
        return result.output

    async def run(self, script_path: str | Path, argv: list[str], label: str = "raw") -> ScriptResult:
        """Validate, normalize and run a script with an explicit argv."""
        states = [InvocationState.REQUESTED]
        try:
            resolved = self.resolve_script_path(script_path)
        except (PathNotAllowedError, UnsupportedScriptTypeError) as e:
            _logger.warning("Sandbox rejected '%s': %s", script_path, e)
            await self._emit(SANDBOX_REJECTED, RejectedEvent(
                script=str(script_path), mode=label, reason=str(e),
            ))
            raise
        states.append(InvocationState.PATH_VALIDATED)

        self.ensure_executable(resolved)
        states.append(InvocationState.PERMISSION_ENSURED)

        result = await self._spawn_and_capture(resolved, argv, states)
        rel = str(resolved.relative_to(self._root))
        result.script = rel

        await self._emit(
            SANDBOX_TERMINATED if result.terminated else SANDBOX_EXITED,
            RunFinishedEvent(
                script=rel,
                mode=label,
                argv=argv,
                exit_code=result.exit_code,
                succeeded=result.succeeded,
                reason=result.terminated_reason,
                bytes=len(result.output),
            ),
        )

        if not result.succeeded:
            raise ScriptFailedError(result.exit_code, result.output)
        return result

    def resolve_script_path(self, script_path: str | Path) -> Path:
        """Resolve against the root and enforce the directory allow-list."""
        candidate = Path(script_path)
        if not candidate.is_absolute():
            candidate = self._root / candidate
        resolved = candidate.resolve()

        try:
            rel = resolved.relative_to(self._root)
        except ValueError:
            raise PathNotAllowedError(f"Script path not allowed: {script_path}") from None

        if not rel.parts or rel.parts[0] not in self._config.allowed_dirs:
            raise PathNotAllowedError(f"Script path not allowed: {rel}")
        if not resolved.name.endswith(self._config.script_suffix):
            raise UnsupportedScriptTypeError(
                f"Only {self._config.script_suffix} scripts are allowed: {rel}"
            )
        return resolved

    def ensure_executable(self, path: Path) -> None:
        """Require read access; grant execute bits when missing."""
        if not path.is_file() or not os.access(path, os.R_OK):
            raise SpawnError(f"Script not found or not readable: {path.name}")
        if os.access(path, os.X_OK):
            return
        if not self._config.auto_chmod:
            raise ScriptNotExecutableError(
                f"Script is not executable and auto-chmod is disabled: {path.name}"
            )
        try:
            mode = path.stat().st_mode
            path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        except OSError as e:
            raise SpawnError(f"Failed to make {path.name} executable: {e}") from e
        _logger.info("Granted execute permission on %s", path.name)

    async def _spawn_and_capture(
        self, script: Path, argv: list[str], states: list[InvocationState],
    ) -> ScriptResult:
        start = time.monotonic()
        env = {**os.environ, **NEUTRALIZED_ENV}

        try:
            proc = await asyncio.create_subprocess_exec(
                self._config.interpreter, str(script), *argv,
                cwd=str(self._root),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnError(f"Failed to launch {script.name}: {e}") from e

        states.append(InvocationState.SPAWNED)
        await self._emit(SANDBOX_SPAWNED, SpawnedEvent(script=script.name, os_pid=proc.pid))
        states.append(InvocationState.RUNNING)

        capture = _BoundedCapture(self._config.max_output_bytes)
        ceiling_hit = asyncio.Event()

        async def _drain(stream: asyncio.StreamReader) -> None:
            while True:
                chunk = await stream.read(_READ_CHUNK)
                if not chunk:
                    return
                if capture.append(chunk):
                    ceiling_hit.set()
                    return

        drains = [
            asyncio.create_task(_drain(proc.stdout)),
            asyncio.create_task(_drain(proc.stderr)),
        ]
        waiter = asyncio.create_task(proc.wait())
        trigger = asyncio.create_task(ceiling_hit.wait())
        reason = ""

        try:
            done, _ = await asyncio.wait(
                {waiter, trigger},
                timeout=self._config.timeout_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if waiter not in done:
                if trigger in done:
                    reason = "output_ceiling"
                    states.append(InvocationState.OUTPUT_CEILING_HIT)
                else:
                    reason = "timeout"
                    states.append(InvocationState.TIMED_OUT)
                _logger.warning("Terminating %s (%s)", script.name, reason)
                await self._terminate(proc)
                states.append(InvocationState.TERMINATED)
            else:
                states.append(InvocationState.EXITED)
            await waiter

            _, pending = await asyncio.wait(drains, timeout=_DRAIN_GRACE_S)
            for task in pending:
                task.cancel()
        finally:
            trigger.cancel()
            for task in drains:
                if not task.done():
                    task.cancel()
            if proc.returncode is None:
                await self._terminate(proc)

        states.append(InvocationState.RESOLVED)
        return ScriptResult(
            script=script.name,
            argv=argv,
            exit_code=proc.returncode,
            output=capture.text(),
            states=states,
            terminated_reason=reason,
            truncated=capture.overflowed,
            execution_time_ms=(time.monotonic() - start) * 1000,
        )

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL after a grace period."""
        self._signal_group(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE_S)
        except asyncio.TimeoutError:
            self._signal_group(proc, signal.SIGKILL)
            await proc.wait()

    @staticmethod
    def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
        try:
            if hasattr(os, "killpg"):
                os.killpg(proc.pid, sig)
            else:
                proc.send_signal(sig)
        except ProcessLookupError:
            pass

    async def _emit(self, topic: str, payload: BaseModel) -> None:
        if self._bus:
            await self._bus.emit(topic, payload, source="sandbox")
