"""Docker Compose command line construction.

Builds the argument list handed to the process runner. Every command starts
with the compose binary followed by ``--project-name <name>`` and the
operation; operation-specific flags follow in a fixed order.

Example usage:
    >>> build_command("proj-x", ComposeOperation.PS)
    ['docker-compose', '--project-name', 'proj-x', 'ps', '-a', '--format=json']
    >>> build_command("proj-x", "down", ComposeOptions(remove_images="all"))[-3:]
    ['down', '--rmi', 'all']
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from composekit.exceptions import ConfigurationError

DEFAULT_COMPOSE_BINARY = "docker-compose"


class ComposeOperation(str, Enum):
    """Compose sub-commands driven by Composekit."""

    UP = "up"
    DOWN = "down"
    START = "start"
    STOP = "stop"
    PS = "ps"


class RemoveImages(str, Enum):
    """Values accepted by ``docker-compose down --rmi``.

    Attributes:
        LOCAL: Remove only images that don't have a custom tag
        ALL: Remove all images used by services
    """

    LOCAL = "local"
    ALL = "all"


class ComposeOptions(BaseModel):
    """Flags appended after the compose operation.

    Attributes:
        detach: Run containers in the background (up, start)
        force_recreate: Recreate containers even if unchanged (up, start)
        wait: Wait for services to be running or healthy (up, start)
        wait_timeout: Maximum seconds to wait; emitted only when positive
        remove_images: Images to remove on down
    """

    detach: bool = Field(default=False)
    force_recreate: bool = Field(default=False)
    wait: bool = Field(default=False)
    wait_timeout: int = Field(default=0, ge=0)
    remove_images: RemoveImages | None = Field(default=None)


def base_command(project_name: str | None, binary: str = DEFAULT_COMPOSE_BINARY) -> list[str]:
    """Return the ``<binary> --project-name <name>`` prefix.

    Raises:
        ConfigurationError: If project_name is missing or blank.
    """
    if project_name is None or not project_name.strip():
        raise ConfigurationError("Docker Compose project name is required")
    return [binary, "--project-name", project_name]


def _startup_flags(options: ComposeOptions) -> list[str]:
    flags: list[str] = []
    if options.detach:
        flags.append("--detach")
    if options.force_recreate:
        flags.append("--force-recreate")
    if options.wait:
        flags.append("--wait")
    if options.wait_timeout > 0:
        flags.extend(["--wait-timeout", str(options.wait_timeout)])
    return flags


def build_command(
    project_name: str | None,
    operation: ComposeOperation | str,
    options: ComposeOptions | None = None,
    binary: str = DEFAULT_COMPOSE_BINARY,
) -> list[str]:
    """Build the full argument list for a compose operation.

    Args:
        project_name: Compose project name (required)
        operation: Operation to run
        options: Operation flags; options that do not apply to the
            operation are ignored
        binary: Compose executable

    Returns:
        Ordered argument tokens, binary first

    Raises:
        ConfigurationError: If project_name is missing or blank.
        ValueError: If operation is not a known compose operation.
    """
    operation = ComposeOperation(operation)
    options = options or ComposeOptions()

    command = base_command(project_name, binary)
    command.append(operation.value)

    if operation is ComposeOperation.PS:
        command.extend(["-a", "--format=json"])
    elif operation is ComposeOperation.DOWN:
        if options.remove_images is not None:
            command.extend(["--rmi", options.remove_images.value])
    elif operation in (ComposeOperation.UP, ComposeOperation.START):
        command.extend(_startup_flags(options))

    return command
