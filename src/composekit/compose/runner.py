"""Process execution for Docker Compose commands.

SubprocessRunner launches the compose CLI with asyncio, streams stdout and
stderr line by line into a LogLineCollector while the process runs, and
reports the exit status. It never interprets the exit code: callers decide
whether a non-zero exit is fatal (tasks) or merely "nothing to report"
(the polling trigger).

Example usage:
    >>> runner = SubprocessRunner()
    >>> collector = LogLineCollector()
    >>> result = await runner.run(
    ...     ["docker-compose", "--project-name", "web", "ps", "-a", "--format=json"],
    ...     env={"DOCKER_HOST": ""},
    ...     sink=collector,
    ... )
    >>> result.exit_code, collector.lines()
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from composekit.compose.collector import LogLineCollector
from composekit.exceptions import CommandTimeoutError, ProcessLaunchError
from composekit.logging import get_logger

READ_CHUNK_SIZE = 64 * 1024


class CommandResult(BaseModel):
    """Result of a finished compose command.

    Attributes:
        exit_code: Process exit code
        stdout_line_count: Number of lines read from stdout
        stderr_line_count: Number of lines read from stderr
        duration_seconds: Wall-clock duration of the command
    """

    exit_code: int = Field(description="Process exit code")
    stdout_line_count: int = Field(default=0, ge=0)
    stderr_line_count: int = Field(default=0, ge=0)
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class ProcessRunner(Protocol):
    """Executes a command line and streams its output into a collector."""

    async def run(
        self,
        command: list[str],
        *,
        env: Mapping[str, str],
        sink: LogLineCollector,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult: ...


class SubprocessRunner:
    """ProcessRunner backed by ``asyncio.create_subprocess_exec``.

    The child inherits the current process environment overlaid with the
    variables passed to ``run``; an empty-string value still overrides an
    inherited one.

    Attributes:
        inherit_env: Start from os.environ when True
        logger: Structured logger instance
    """

    def __init__(self, inherit_env: bool = True) -> None:
        self.inherit_env = inherit_env
        self.logger = get_logger(__name__)

    def _child_env(self, env: Mapping[str, str]) -> dict[str, str]:
        child_env = dict(os.environ) if self.inherit_env else {}
        child_env.update(env)
        return child_env

    async def _pump(
        self, stream: asyncio.StreamReader, sink: LogLineCollector, is_stderr: bool
    ) -> None:
        # ps lines have no length bound; readline() stops at the 64 KiB stream limit
        pending = b""
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            *complete, pending = (pending + chunk).split(b"\n")
            for raw in complete:
                sink.accept(raw.decode("utf-8", errors="replace"), is_stderr)
        if pending:
            sink.accept(pending.decode("utf-8", errors="replace"), is_stderr)

    async def run(
        self,
        command: list[str],
        *,
        env: Mapping[str, str],
        sink: LogLineCollector,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run a command to completion.

        Args:
            command: Argument list, executable first
            env: Variables set for the child process
            sink: Collector receiving every output line
            cwd: Working directory of the child
            timeout: Seconds before the child is killed (None or 0 waits forever)

        Returns:
            CommandResult with the exit code and line counts

        Raises:
            ProcessLaunchError: If the executable is missing or not runnable.
            CommandTimeoutError: If the command exceeded the timeout.
        """
        start_time = time.monotonic()

        self.logger.debug(
            "running_compose_command",
            command=" ".join(command),
            cwd=str(cwd) if cwd else None,
            timeout=timeout,
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._child_env(env),
                cwd=str(cwd) if cwd else None,
            )
        except FileNotFoundError as e:
            self.logger.error("compose_command_not_found", command=command[0])
            raise ProcessLaunchError(command, "executable not found") from e
        except PermissionError as e:
            self.logger.error("compose_command_not_executable", command=command[0])
            raise ProcessLaunchError(command, "permission denied") from e
        except OSError as e:
            self.logger.error(
                "compose_command_launch_error",
                command=command[0],
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ProcessLaunchError(command, str(e)) from e

        async def _communicate() -> int:
            assert proc.stdout is not None and proc.stderr is not None
            pumps = [
                asyncio.ensure_future(self._pump(proc.stdout, sink, is_stderr=False)),
                asyncio.ensure_future(self._pump(proc.stderr, sink, is_stderr=True)),
            ]
            try:
                await asyncio.gather(*pumps)
            finally:
                for pump in pumps:
                    pump.cancel()
            return await proc.wait()

        try:
            exit_code = await asyncio.wait_for(_communicate(), timeout=timeout or None)
        except asyncio.TimeoutError as e:
            self.logger.error(
                "compose_command_timeout",
                command=" ".join(command),
                timeout=timeout,
            )
            raise CommandTimeoutError(command, timeout or 0) from e
        except asyncio.CancelledError:
            self.logger.warning("compose_command_cancelled", command=" ".join(command))
            raise
        except Exception as e:
            self.logger.error(
                "compose_output_read_failed",
                command=" ".join(command),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise
        finally:
            await self._kill(proc)

        duration = time.monotonic() - start_time
        self.logger.debug(
            "compose_command_finished",
            command=" ".join(command),
            exit_code=exit_code,
            stdout_lines=sink.stdout_count,
            stderr_lines=sink.stderr_count,
            duration_seconds=round(duration, 2),
        )

        return CommandResult(
            exit_code=exit_code,
            stdout_line_count=sink.stdout_count,
            stderr_line_count=sink.stderr_count,
            duration_seconds=duration,
        )

    async def _kill(self, proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
