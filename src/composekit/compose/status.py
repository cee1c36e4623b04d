"""Parsing of ``docker-compose ps -a --format=json`` output.

Compose prints one JSON object per container and per line. Each line is
decoded independently so that a single malformed line never prevents the
remaining containers from being reported.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from composekit.exceptions import ParseError
from composekit.logging import get_logger

logger = get_logger(__name__)

RUNNING_STATE = "running"


class ContainerStatus(BaseModel):
    """Status of one compose-managed container at poll time.

    Field aliases match the keys printed by compose; unknown keys (Image,
    Ports, Labels, ...) are ignored.

    Attributes:
        id: Container identifier
        service: Compose service the container belongs to
        name: Container name
        command: Running entrypoint
        state: Container state (running, exited, created, ...)
        health: Health check status, empty when no healthcheck is defined
        exit_code: Exit code, only set once the container has stopped
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(alias="ID", min_length=1)
    service: str = Field(default="", alias="Service")
    name: str = Field(alias="Name", min_length=1)
    command: str = Field(default="", alias="Command")
    state: str = Field(default="", alias="State")
    health: str = Field(default="", alias="Health")
    exit_code: int | None = Field(default=None, alias="ExitCode")

    @model_validator(mode="before")
    @classmethod
    def _drop_exit_code_while_running(cls, data: Any) -> Any:
        # compose reports ExitCode 0 for containers that are still running
        if isinstance(data, dict) and data.get("State", data.get("state")) == RUNNING_STATE:
            data = {key: value for key, value in data.items() if key not in ("ExitCode", "exit_code")}
        return data

    @property
    def is_running(self) -> bool:
        return self.state == RUNNING_STATE

    def to_output(self) -> dict[str, Any]:
        """Serialise with compose key names, as exposed to conditions and outputs."""
        return self.model_dump(by_alias=True)


class StatusParseReport(BaseModel):
    """Outcome of parsing a batch of output lines.

    Attributes:
        containers: Successfully parsed records, in output order
        errors: Number of non-blank lines that were skipped
    """

    containers: list[ContainerStatus] = Field(default_factory=list)
    errors: int = Field(default=0, ge=0)


def parse_status_line(line: str) -> ContainerStatus | None:
    """Decode one output line into a ContainerStatus.

    Args:
        line: Raw output line

    Returns:
        The parsed record, or None for a blank line

    Raises:
        ParseError: If the line is not a JSON object matching the schema.
    """
    if not line.strip():
        return None
    try:
        return ContainerStatus.model_validate_json(line)
    except ValidationError as e:
        raise ParseError(line, e) from e


def parse_status_lines(lines: Iterable[str]) -> StatusParseReport:
    """Parse every line, skipping and logging the ones that fail.

    Args:
        lines: Output lines in arrival order

    Returns:
        StatusParseReport with the parsed containers and the error count
    """
    report = StatusParseReport()
    for line_number, line in enumerate(lines, start=1):
        try:
            status = parse_status_line(line)
        except ParseError as e:
            report.errors += 1
            logger.error(
                "container_status_parse_failed",
                line_number=line_number,
                line=line[:500],
                error=str(e.cause),
            )
            continue
        if status is not None:
            report.containers.append(status)
    return report
