"""CLI entrypoint for taskpilot.

The CLI works with two directories:
1. "program dir" - holds prompts/system/coding.md, prompts/tasks/<task>/<subtask>.md,
   references/ and taskpilot.yaml (defaults to the current directory).
2. "project dir" - the codebase the agent works on, given as an argument.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .agent import AgentError
from .cancellation import RunCancelled
from .coding import TaskFailure
from .config import Config
from .confirmation import AutoConfirmer, Confirmer, ConsoleConfirmer
from .launcher import Launcher
from .orchestrator import RunStatus
from .task_manager import SetupError, load_workset

# Initialize Typer app
app = typer.Typer(
    name="taskpilot",
    help="Drive a coding agent through a task/subtask work list.",
    add_completion=False,
)

console = Console()


def setup_logging(verbose: bool = False, level: str = "INFO") -> None:
    """Configure logging with Rich handler.

    Args:
        verbose: If True, set DEBUG level; otherwise use ``level``.
        level: Configured log level name.
    """
    log_level = logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def parse_range(value: Optional[str]) -> tuple[int, int]:
    """Parse a ``task[:subtask]`` start offset.

    Parts that are missing or not integers count as 0.
    """
    if not value:
        return 0, 0

    def to_int(part: str) -> int:
        try:
            return int(part.strip())
        except ValueError:
            return 0

    parts = value.split(":")
    start_task = to_int(parts[0])
    start_subtask = to_int(parts[1]) if len(parts) > 1 else 0
    return start_task, start_subtask


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"taskpilot version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Drive a coding agent through a task/subtask work list."""
    pass


@app.command()
def run(
    project: Path = typer.Argument(
        ...,
        help="Path to the project the agent works on.",
    ),
    start: Optional[str] = typer.Argument(
        None,
        help="Start offset as TASK[:SUBTASK] (zero-based), e.g. 1:2.",
    ),
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        "-c",
        help="Program directory with prompts/, references/ and taskpilot.yaml (default: current directory).",
    ),
    mock: bool = typer.Option(
        False,
        "--mock",
        "-m",
        help="Run in mock mode (no API calls, every subtask succeeds).",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Approve every confirmation request automatically.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        help="Enable verbose output.",
    ),
) -> None:
    """Run the work list against a project.

    Examples:
        # Run everything:
        taskpilot run ../legacy-app

        # Resume at the third subtask of the second task:
        taskpilot run ../legacy-app 1:2

        # Dry run of the work list without calling the model:
        taskpilot run ../legacy-app --mock --yes
    """
    program_dir = (config_dir or Path.cwd()).resolve()
    config = Config.from_env(program_dir)

    setup_logging(verbose, config.log_level)
    logger = logging.getLogger(__name__)

    project_dir = project.resolve()
    if not project_dir.is_dir():
        console.print(f"[red]Error:[/red] The project path '{project_dir}' does not exist.")
        raise typer.Exit(1)

    if mock:
        config.mock_mode = True
    if yes:
        config.auto_approve = True

    errors = config.validate()
    if errors:
        console.print("[red]Configuration errors:[/red]")
        for error in errors:
            console.print(f"  - {error}")
        raise typer.Exit(1)

    start_task, start_subtask = parse_range(start)

    console.print(f"\n[bold]Starting taskpilot run[/bold]")
    console.print(f"[dim]Project:[/dim] {project_dir}")
    console.print(f"[dim]Program dir:[/dim] {program_dir}")
    console.print(f"[dim]Model:[/dim] {'mock' if config.mock_mode else config.agent.model}")
    console.print(f"[dim]Start offset:[/dim] {start_task}:{start_subtask}")
    console.print(f"[dim]History window:[/dim] head {config.history.head}, tail {config.history.tail}")
    console.print(f"[dim]Confirmations:[/dim] {'auto-approve' if config.auto_approve else 'interactive'}")
    console.print()

    confirmer: Confirmer
    if config.auto_approve:
        confirmer = AutoConfirmer()
    else:
        confirmer = ConsoleConfirmer(console, project_name=project_dir.name)

    launcher = Launcher(config, confirmer)

    try:
        result = launcher.run(project_dir, start_task, start_subtask)
    except SetupError as e:
        console.print(f"[red]Setup error:[/red] {e}")
        raise typer.Exit(1)
    except (TaskFailure, AgentError) as e:
        logger.error(f"Failed to execute the workflow: {e}")
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except IndexError:
        console.print(f"[red]Error:[/red] Start offset {start_task}:{start_subtask} is out of range.")
        raise typer.Exit(1)
    except (KeyboardInterrupt, RunCancelled):
        console.print("\n[yellow]Run cancelled.[/yellow]")
        raise typer.Exit(130)
    finally:
        if launcher.run_logger is not None:
            launcher.run_logger.print_summary(console)

    if result.status == RunStatus.PARKED:
        console.print("[yellow]Run stopped: the confirmation was declined.[/yellow]")
        console.print(f"[dim]Resume with: taskpilot run {project} {result.offset}[/dim]")
        return

    console.print(f"[green]{result.summary}[/green]")


@app.command("list")
def list_tasks(
    config_dir: Optional[Path] = typer.Option(
        None,
        "--config-dir",
        "-c",
        help="Program directory with prompts/ (default: current directory).",
    ),
) -> None:
    """List tasks and subtasks with their start offsets."""
    program_dir = (config_dir or Path.cwd()).resolve()
    config = Config.load_from_file(program_dir)

    try:
        tasks = load_workset(config.tasks_dir, config.subtask_extension)
    except SetupError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Work list")
    table.add_column("Offset", style="cyan")
    table.add_column("Task")
    table.add_column("Subtask", style="dim")

    for task_index, task in enumerate(tasks):
        for subtask_index, subtask in enumerate(task.subtasks):
            table.add_row(f"{task_index}:{subtask_index}", task.title, subtask.title)

    console.print(table)
    console.print(f"{len(tasks)} tasks, {sum(len(t.subtasks) for t in tasks)} subtasks")


if __name__ == "__main__":
    app()
