"""Docker Compose task CLI commands.

This module exposes the up, down, start, stop and ps tasks on the command
line. Each command exits with the compose exit code when compose fails.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Iterable, Optional

import typer
from rich.console import Console
from rich.table import Table

from composekit.compose.commands import RemoveImages
from composekit.compose.status import ContainerStatus
from composekit.exceptions import CommandExitError, ComposekitError
from composekit.tasks import ComposeTask, Down, Ps, PsOutput, ScriptOutput, Start, Stop, TaskContext, Up

app = typer.Typer(help="Docker Compose task commands")
console = Console()

ProjectArgument = Annotated[str, typer.Argument(help="Docker Compose project name")]
DockerHostOption = Annotated[
    Optional[str],
    typer.Option("--docker-host", "-H", help="Docker daemon address (DOCKER_HOST)"),
]
EnvOption = Annotated[
    Optional[list[str]],
    typer.Option("--env", "-e", help="Extra environment variable, KEY=VALUE (repeatable)"),
]
WorkdirOption = Annotated[
    Optional[Path],
    typer.Option(
        "--workdir",
        "-w",
        help="Working directory (a temporary directory is used otherwise)",
        file_okay=False,
    ),
]


def parse_key_value(pairs: Iterable[str]) -> dict[str, str]:
    output: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            console.print(f"[red]Expected KEY=VALUE but got '{pair}'[/red]")
            raise typer.Exit(code=2)
        key, value = pair.split("=", 1)
        output[key.strip()] = value
    return output


def read_input_files(paths: Iterable[Path]) -> dict[str, str]:
    return {path.name: path.read_text(encoding="utf-8") for path in paths}


def run_task(task: ComposeTask, workdir: Path | None = None) -> ScriptOutput:
    """Run a task with the configured context, mapping failures to exit codes."""
    from composekit.main import get_app_context

    ctx = get_app_context()
    context = TaskContext(config=ctx.config.compose)

    try:
        return asyncio.run(task.run(context, working_dir=workdir))
    except CommandExitError as e:
        for line in e.lines[-20:]:
            console.print(f"[dim]{line}[/dim]", highlight=False)
        console.print(f"[red]Compose exited with code {e.exit_code}[/red]")
        raise typer.Exit(code=e.exit_code or 1)
    except ComposekitError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)


def _report(output: ScriptOutput, action: str) -> None:
    console.print(
        f"[green]{action}[/green] "
        f"[dim](exit {output.exit_code}, {output.duration_seconds:.1f}s)[/dim]"
    )


@app.command()
def up(
    project_name: ProjectArgument,
    compose_file: Annotated[
        Path,
        typer.Option(
            "--file",
            "-f",
            help="Compose stack definition (YAML)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    input_files: Annotated[
        Optional[list[Path]],
        typer.Option(
            "--input-file",
            "-i",
            help="Extra file copied next to the stack definition (repeatable)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    detach: Annotated[bool, typer.Option("--detach", "-d", help="Run containers in the background")] = False,
    force_recreate: Annotated[bool, typer.Option("--force-recreate", help="Recreate containers")] = False,
    wait: Annotated[bool, typer.Option("--wait", help="Wait for services to be running|healthy")] = False,
    wait_timeout: Annotated[int, typer.Option("--wait-timeout", min=0, help="Wait timeout in seconds")] = 0,
    docker_host: DockerHostOption = None,
    env: EnvOption = None,
    workdir: WorkdirOption = None,
) -> None:
    """Create and start the containers of a compose stack."""
    task = Up(
        project_name=project_name,
        docker_host=docker_host,
        env=parse_key_value(env or []),
        yaml=compose_file.read_text(encoding="utf-8"),
        input_files=read_input_files(input_files or []),
        detached=detach,
        force_recreate=force_recreate,
        wait=wait,
        wait_timeout=wait_timeout,
    )
    _report(run_task(task, workdir), f"Project {project_name} is up")


@app.command()
def start(
    project_name: ProjectArgument,
    compose_file: Annotated[
        Optional[Path],
        typer.Option(
            "--file",
            "-f",
            help="Compose stack definition (YAML)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    detach: Annotated[bool, typer.Option("--detach", "-d", help="Run containers in the background")] = False,
    force_recreate: Annotated[bool, typer.Option("--force-recreate", help="Recreate containers")] = False,
    wait: Annotated[bool, typer.Option("--wait", help="Wait for services to be running|healthy")] = False,
    wait_timeout: Annotated[int, typer.Option("--wait-timeout", min=0, help="Wait timeout in seconds")] = 0,
    docker_host: DockerHostOption = None,
    env: EnvOption = None,
    workdir: WorkdirOption = None,
) -> None:
    """Start the existing containers of a compose project."""
    task = Start(
        project_name=project_name,
        docker_host=docker_host,
        env=parse_key_value(env or []),
        yaml=compose_file.read_text(encoding="utf-8") if compose_file else None,
        detached=detach,
        force_recreate=force_recreate,
        wait=wait,
        wait_timeout=wait_timeout,
    )
    _report(run_task(task, workdir), f"Project {project_name} started")


@app.command()
def down(
    project_name: ProjectArgument,
    remove_images: Annotated[
        Optional[RemoveImages],
        typer.Option("--rmi", help="Remove images used by services (local or all)"),
    ] = None,
    docker_host: DockerHostOption = None,
    workdir: WorkdirOption = None,
) -> None:
    """Stop and remove the containers of a compose project."""
    task = Down(project_name=project_name, docker_host=docker_host, remove_images=remove_images)
    _report(run_task(task, workdir), f"Project {project_name} is down")


@app.command()
def stop(
    project_name: ProjectArgument,
    docker_host: DockerHostOption = None,
    workdir: WorkdirOption = None,
) -> None:
    """Stop the running containers of a compose project."""
    task = Stop(project_name=project_name, docker_host=docker_host)
    _report(run_task(task, workdir), f"Project {project_name} stopped")


def containers_table(containers: list[ContainerStatus], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Name", style="cyan")
    table.add_column("Service")
    table.add_column("State")
    table.add_column("Health")
    table.add_column("Exit Code", justify="right")

    for container in containers:
        state_style = "green" if container.is_running else "yellow"
        table.add_row(
            container.name,
            container.service,
            f"[{state_style}]{container.state}[/{state_style}]",
            container.health or "-",
            "-" if container.exit_code is None else str(container.exit_code),
        )
    return table


@app.command()
def ps(
    project_name: ProjectArgument,
    json_output: Annotated[bool, typer.Option("--json", help="Print containers as JSON")] = False,
    docker_host: DockerHostOption = None,
) -> None:
    """List the containers of a compose project with their status."""
    output = run_task(Ps(project_name=project_name, docker_host=docker_host))
    containers = output.containers if isinstance(output, PsOutput) else []

    if json_output:
        typer.echo(json.dumps([c.to_output() for c in containers], indent=2))
        return

    if not containers:
        console.print(f"[yellow]No containers found for project {project_name}[/yellow]")
        return
    console.print(containers_table(containers, f"Containers of {project_name}"))
