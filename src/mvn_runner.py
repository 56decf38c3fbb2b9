"""Run external tools (mvn) without blocking the event loop."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

MVN_TIMEOUT_SECONDS = 120.0


def mvn_executable() -> str:
    """The Maven command; the MVN environment variable overrides 'mvn'."""
    return os.environ.get('MVN', 'mvn')


@dataclass
class ProcessResult:
    exit_code: int
    stdout: str
    stderr: str


class ProcessError(Exception):
    """A process could not be started, timed out, or exited non-zero in check mode."""

    def __init__(self, message: str, result: ProcessResult | None = None):
        super().__init__(message)
        self.result = result

    @property
    def diagnostic(self) -> str:
        """Tool output explaining the failure (stdout and stderr together, else the message).

        Maven writes its [ERROR] lines to stdout while the JVM may warn on stderr.
        """
        if self.result is not None:
            text = '\n'.join(s for s in (self.result.stdout.strip(), self.result.stderr.strip()) if s)
            if text:
                return text
        return str(self)


async def run_process(command: str, args: list[str], timeout: float | None = None,
                      check: bool = True, cwd: Path | str | None = None) -> ProcessResult:
    """Run `command args...` and capture its output.

    With check=False a non-zero exit is returned, not raised. An executable
    that cannot be started or an exceeded timeout always raises ProcessError.
    """
    cmdline = ' '.join([command, *args])
    logger.debug("Running %s", cmdline)
    try:
        proc = await asyncio.create_subprocess_exec(
            command, *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd is not None else None,
        )
    except FileNotFoundError as e:
        raise ProcessError(f"Command not found: {command} ({e})") from e
    except OSError as e:
        raise ProcessError(f"Command could not be started: {command} ({e})") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise ProcessError(f"Command timed out after {timeout}s: {cmdline}")

    result = ProcessResult(
        exit_code=proc.returncode,
        stdout=stdout.decode('utf-8', errors='replace'),
        stderr=stderr.decode('utf-8', errors='replace'),
    )
    if check and result.exit_code != 0:
        raise ProcessError(f"Command failed (exit {result.exit_code}): {cmdline}", result)
    return result
