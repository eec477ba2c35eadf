"""Subprocess execution for environment steps, tasks and tests.

A command's output is either captured in memory or appended to a log file
with stdout and stderr interleaved.  Nothing is killed unless a timeout is
passed explicitly; job timeouts belong to the CI platform.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

logger = logging.getLogger(__name__)


@dataclass
class SubprocessResult:
    """Outcome of one external command."""

    returncode: int
    """Exit status (``-1`` when the process never started or was killed)."""

    stdout: str = ""
    """Captured standard output; empty when output went to ``log_path``."""

    stderr: str = ""
    """Captured standard error; empty when output went to ``log_path``."""

    timed_out: bool = False
    duration_ms: float = 0.0

    log_path: Path | None = None
    """Log file the combined output was appended to."""

    @property
    def success(self) -> bool:
        return self.returncode == 0 and not self.timed_out


class SubprocessError(Exception):
    """A command could not be started, or failed under ``check=True``."""

    def __init__(self, message: str, result: SubprocessResult) -> None:
        super().__init__(message)
        self.result = result


def _format_command(command: Sequence[str]) -> str:
    return " ".join(str(part) for part in command)


async def _terminate(process: asyncio.subprocess.Process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()


async def _run_captured(
    command: Sequence[str],
    cwd: Path,
    env: Mapping[str, str] | None,
    timeout: float | None,
) -> tuple[int, bytes, bytes, bool]:
    process = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
        env=env,
    )
    try:
        out, err = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        logger.warning("Killing %s after %s seconds", _format_command(command), timeout)
        await _terminate(process)
        return -1, b"", b"Process timed out and was killed", True
    return process.returncode or 0, out, err, False


async def _run_logged(
    command: Sequence[str],
    cwd: Path,
    env: Mapping[str, str] | None,
    timeout: float | None,
    log_path: Path,
) -> tuple[int, bool]:
    with log_path.open("ab") as log_file:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=log_file,
            stderr=asyncio.subprocess.STDOUT,
            cwd=cwd,
            env=env,
        )
        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except TimeoutError:
            logger.warning("Killing %s after %s seconds", _format_command(command), timeout)
            await _terminate(process)
            return -1, True
    return process.returncode or 0, False


def _launch_failure(
    command: Sequence[str], exc: OSError, log_path: Path | None
) -> SubprocessError:
    if isinstance(exc, FileNotFoundError):
        message = f"Command not found: {command[0]}"
        logger.error(message)
    else:
        message = f"Subprocess execution failed: {exc}"
        logger.exception("Could not start %s", _format_command(command))
    result = SubprocessResult(returncode=-1, stderr=str(exc), log_path=log_path)
    return SubprocessError(message, result=result)


async def run_subprocess(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
    timeout: float | None = None,
    log_path: Path | None = None,
    check: bool = False,
) -> SubprocessResult:
    """Run *command* to completion.

    Args:
        command: Program and arguments, e.g. ``["node", "test.js"]``.
        cwd: Working directory (defaults to the current directory).
        env: Extra variables layered over the inherited environment.
        timeout: Seconds before the process is killed; ``None`` waits forever.
        log_path: Append combined stdout/stderr here instead of capturing it.
        check: Raise :class:`SubprocessError` on a non-zero exit.

    Raises:
        SubprocessError: The command could not be started, or *check* is set
            and it failed.
        ValueError: Empty command, non-positive timeout or missing *cwd*.
    """
    if not command:
        raise ValueError("Command cannot be empty")
    if timeout is not None and timeout <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout}")

    work_dir = cwd.resolve() if cwd else Path.cwd()
    if not work_dir.exists():
        raise ValueError(f"Working directory does not exist: {work_dir}")

    child_env = {**os.environ, **env} if env else None
    logger.debug("Running %s (cwd=%s, log=%s)", _format_command(command), work_dir, log_path)

    started = time.perf_counter()
    try:
        if log_path is None:
            returncode, out, err, timed_out = await _run_captured(
                command, work_dir, child_env, timeout
            )
        else:
            returncode, timed_out = await _run_logged(
                command, work_dir, child_env, timeout, log_path
            )
            out = err = b""
    except OSError as exc:
        raise _launch_failure(command, exc, log_path) from exc

    result = SubprocessResult(
        returncode=returncode,
        stdout=out.decode("utf-8", errors="replace"),
        stderr=err.decode("utf-8", errors="replace"),
        timed_out=timed_out,
        duration_ms=(time.perf_counter() - started) * 1000,
        log_path=log_path,
    )
    logger.debug(
        "Finished %s: returncode=%d in %.0fms",
        _format_command(command),
        result.returncode,
        result.duration_ms,
    )

    if check and not result.success:
        msg = f"Command failed with exit code {result.returncode}: {_format_command(command)}"
        raise SubprocessError(msg, result=result)
    return result
