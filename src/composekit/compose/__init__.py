"""Docker Compose primitives: command building, execution, output parsing."""

from __future__ import annotations

from composekit.compose.collector import LogLine, LogLineCollector
from composekit.compose.commands import (
    DEFAULT_COMPOSE_BINARY,
    ComposeOperation,
    ComposeOptions,
    RemoveImages,
    base_command,
    build_command,
)
from composekit.compose.environment import compose_environment
from composekit.compose.runner import CommandResult, ProcessRunner, SubprocessRunner
from composekit.compose.status import (
    ContainerStatus,
    StatusParseReport,
    parse_status_line,
    parse_status_lines,
)

__all__ = [
    # Command building
    "DEFAULT_COMPOSE_BINARY",
    "ComposeOperation",
    "ComposeOptions",
    "RemoveImages",
    "base_command",
    "build_command",
    "compose_environment",
    # Execution
    "CommandResult",
    "LogLine",
    "LogLineCollector",
    "ProcessRunner",
    "SubprocessRunner",
    # Status parsing
    "ContainerStatus",
    "StatusParseReport",
    "parse_status_line",
    "parse_status_lines",
]
