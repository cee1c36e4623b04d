"""Shared test fixtures for Composekit tests."""

from __future__ import annotations

import json
import os
import stat
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest
import structlog

from composekit.compose.collector import LogLineCollector
from composekit.compose.runner import CommandResult
from composekit.config import ComposeConfig


class FakeRunner:
    """ProcessRunner double replaying canned output.

    Every call is recorded with its command, environment, working directory
    and the files present in the working directory when the command ran.
    """

    def __init__(
        self,
        stdout: list[str] | None = None,
        stderr: list[str] | None = None,
        exit_code: int = 0,
        error: Exception | None = None,
    ) -> None:
        self.stdout = stdout or []
        self.stderr = stderr or []
        self.exit_code = exit_code
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def run(
        self,
        command: list[str],
        *,
        env: Mapping[str, str],
        sink: LogLineCollector,
        cwd: Path | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        files: dict[str, str] = {}
        if cwd is not None and cwd.exists():
            files = {
                str(path.relative_to(cwd)): path.read_text(encoding="utf-8")
                for path in cwd.rglob("*")
                if path.is_file()
            }
        self.calls.append(
            {"command": command, "env": dict(env), "cwd": cwd, "timeout": timeout, "files": files}
        )
        if self.error is not None:
            raise self.error
        for line in self.stdout:
            sink.accept(line, False)
        for line in self.stderr:
            sink.accept(line, True)
        return CommandResult(
            exit_code=self.exit_code,
            stdout_line_count=sink.stdout_count,
            stderr_line_count=sink.stderr_count,
        )


@pytest.fixture
def make_runner() -> type[FakeRunner]:
    """Return the FakeRunner class so tests can build runners with canned output."""
    return FakeRunner


@pytest.fixture(autouse=True)
def clear_log_context() -> None:
    """Drop structlog context bound by previous tests."""
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def exited_web_line() -> str:
    """A ps line for a stopped container."""
    return json.dumps(
        {
            "ID": "a1",
            "Service": "web",
            "Name": "web_1",
            "Command": "nginx",
            "State": "exited",
            "Health": "",
            "ExitCode": 1,
        }
    )


@pytest.fixture
def running_db_line() -> str:
    """A ps line for a running container, with fields Composekit ignores."""
    return json.dumps(
        {
            "ID": "b2",
            "Service": "db",
            "Name": "db_1",
            "Command": "docker-entrypoint.sh postgres",
            "State": "running",
            "Health": "healthy",
            "ExitCode": 0,
            "Image": "postgres:16",
            "Publishers": [{"URL": "0.0.0.0", "TargetPort": 5432}],
        }
    )


@pytest.fixture
def compose_config() -> ComposeConfig:
    """Compose configuration without a command timeout."""
    return ComposeConfig(command_timeout_seconds=0)


@pytest.fixture
def fake_compose(tmp_path: Path) -> Path:
    """Create an executable script standing in for docker-compose.

    The script prints the content of $FAKE_COMPOSE_STDOUT (one line per
    line) and of $FAKE_COMPOSE_STDERR on stderr, records its arguments and
    the managed environment variables in $FAKE_COMPOSE_RECORD, and exits
    with $FAKE_COMPOSE_EXIT.
    """
    script = tmp_path / "fake-compose"
    script.write_text(
        f"#!{sys.executable}\n"
        "import json, os, sys\n"
        "record = os.environ.get('FAKE_COMPOSE_RECORD')\n"
        "if record:\n"
        "    with open(record, 'w') as f:\n"
        "        json.dump({'argv': sys.argv[1:], 'cwd': os.getcwd(),\n"
        "                   'DOCKER_HOST': os.environ.get('DOCKER_HOST'),\n"
        "                   'COMPOSE_STATUS_STDOUT': os.environ.get('COMPOSE_STATUS_STDOUT')}, f)\n"
        "out = os.environ.get('FAKE_COMPOSE_STDOUT', '')\n"
        "if out:\n"
        "    sys.stdout.write(out + '\\n')\n"
        "err = os.environ.get('FAKE_COMPOSE_STDERR', '')\n"
        "if err:\n"
        "    sys.stderr.write(err + '\\n')\n"
        "sys.exit(int(os.environ.get('FAKE_COMPOSE_EXIT', '0')))\n",
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def clean_environ(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove fake-compose and Docker variables inherited from the shell."""
    for key in list(os.environ):
        if key.startswith(("FAKE_COMPOSE_", "COMPOSEKIT_")) or key in (
            "DOCKER_HOST",
            "COMPOSE_STATUS_STDOUT",
        ):
            monkeypatch.delenv(key, raising=False)
