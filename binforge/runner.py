"""Process runner — executes external build tools and captures their logs.

``run()`` takes an argv list (never a shell string), runs it in a worker
thread and reports a ``RunResult``.  Build tools are chatty, so captured
logs are capped and keep their *last* part, where the error usually is.

``ProcessExecutor`` exposes ``run()`` through the ``Executor`` protocol
the toolchain clients depend on; tests plug in a fake instead.
"""

from __future__ import annotations

import asyncio
import os
import shlex
import subprocess
import time
from typing import Protocol, Sequence

from pydantic import BaseModel, ConfigDict

from binforge.errors import ConfigurationError

STDOUT_LIMIT: int = 50_000
STDERR_LIMIT: int = 10_000
DEFAULT_TIMEOUT_S: int = 3600

# Host variables the Apple toolchain needs to locate SDKs and caches.
_INHERITED_ENV: tuple[str, ...] = (
    "PATH", "HOME", "USER", "LANG", "TMPDIR",
    "DEVELOPER_DIR", "SDKROOT", "TOOLCHAINS",
)


class RunResult(BaseModel):
    """Outcome of one tool invocation.

    ``exit_code`` is -1 when the process never produced one (missing
    binary, killed on timeout).
    """

    model_config = ConfigDict(frozen=True)

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    truncated: bool = False
    killed: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.killed

    def stderr_tail(self, lines: int = 20) -> str:
        """Last *lines* lines of stderr (stdout if stderr is empty)."""
        text = self.stderr.strip() or self.stdout.strip()
        return "\n".join(text.splitlines()[-lines:])


def tool_environment(overrides: dict[str, str] | None = None) -> dict[str, str]:
    """Environment for a tool process: inherited toolchain vars + *overrides*."""
    env = {key: os.environ[key] for key in _INHERITED_ENV if os.environ.get(key)}
    env.update(overrides or {})
    return env


def keep_tail(text: str, limit: int) -> tuple[str, bool]:
    """Cap *text* at *limit* characters, dropping the head.

    Returns the (possibly shortened) text and whether anything was dropped.
    """
    if len(text) <= limit:
        return text, False
    return f"[... {len(text) - limit} earlier characters dropped ...]\n{text[-limit:]}", True


def _as_text(output: bytes | str | None) -> str:
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output or ""


async def run(
    argv: Sequence[str],
    *,
    timeout_s: int = DEFAULT_TIMEOUT_S,
    cwd: str | None = None,
    env: dict[str, str] | None = None,
) -> RunResult:
    """Run *argv* to completion off the event loop.

    A missing binary or unusable *cwd* is reported as ``exit_code=-1``
    with the OS error in ``stderr``; a timeout as ``killed=True``.

    Raises :class:`ConfigurationError` when *argv* is empty.
    """
    if not argv or not str(argv[0]).strip():
        raise ConfigurationError("Command is empty")

    args = [str(a) for a in argv]
    command = shlex.join(args)
    process_env = tool_environment(env)

    def _blocking() -> tuple[int, str, str, bool]:
        try:
            proc = subprocess.run(
                args,
                cwd=cwd,
                env=process_env,
                capture_output=True,
                text=True,
                timeout=timeout_s,
            )
        except subprocess.TimeoutExpired as exc:
            return -1, _as_text(exc.stdout), _as_text(exc.stderr), True
        return proc.returncode, proc.stdout or "", proc.stderr or "", False

    started = time.monotonic()
    try:
        code, out, err, killed = await asyncio.get_running_loop().run_in_executor(
            None, _blocking
        )
    except OSError as exc:
        code, out, err, killed = -1, "", f"Error: {exc}", False
    elapsed_ms = int((time.monotonic() - started) * 1000)

    out, out_cut = keep_tail(out, STDOUT_LIMIT)
    err, err_cut = keep_tail(err, STDERR_LIMIT)
    return RunResult(
        command=command,
        exit_code=code,
        stdout=out,
        stderr=err,
        duration_ms=elapsed_ms,
        truncated=out_cut or err_cut,
        killed=killed,
    )


class Executor(Protocol):
    """Anything that can run an external command."""

    async def execute(self, argv: Sequence[str], *, cwd: str | None = None) -> RunResult:
        ...


class ProcessExecutor:
    """Executor backed by real subprocesses."""

    __slots__ = ("timeout_s", "env")

    def __init__(
        self,
        *,
        timeout_s: int = DEFAULT_TIMEOUT_S,
        env: dict[str, str] | None = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.env = env

    async def execute(self, argv: Sequence[str], *, cwd: str | None = None) -> RunResult:
        return await run(argv, timeout_s=self.timeout_s, cwd=cwd, env=self.env)


__all__ = [
    "DEFAULT_TIMEOUT_S",
    "Executor",
    "ProcessExecutor",
    "RunResult",
    "STDERR_LIMIT",
    "STDOUT_LIMIT",
    "keep_tail",
    "run",
    "tool_environment",
]
