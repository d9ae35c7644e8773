#!/usr/bin/env python3
"""
Tabflow CLI - Command-line interface for tabular file workflows.

Usage:
    tabflow run workflow.yaml -i data.csv       # Run a workflow
    tabflow run workflow.yaml -i data.csv --local -o out.csv
    tabflow validate workflow.yaml              # Validate without running
    tabflow show workflow.yaml                  # Show workflow structure
    tabflow types                               # List available step types
"""

import asyncio
import logging
import shutil
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from app.config import reload_config
from processing import ProcessingService, RemoteProcessingService, get_processing_service
from workflow import (
    Artifact,
    StepResult,
    StepStatus,
    Workflow,
    WorkflowContext,
    WorkflowError,
    WorkflowExecutor,
    WorkflowStatus,
    available_step_types,
    load_workflow,
)

console = Console()

STATUS_STYLES = {
    StepStatus.PENDING: "dim",
    StepStatus.RUNNING: "yellow",
    StepStatus.SUCCESS: "green",
    StepStatus.FAILED: "red",
    StepStatus.CANCELLED: "magenta",
}


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def print_error(title: str, message: str) -> None:
    console.print(Panel(message, title=f"[bold red]{title}[/bold red]", border_style="red"))


@click.group()
@click.version_option(version="0.1.0", prog_name="tabflow")
def cli():
    """Tabflow - Tabular File Workflow Runner"""
    pass


@cli.command()
@click.argument("workflow_file", metavar="WORKFLOW", type=click.Path(exists=True))
@click.option("--input", "-i", "input_file", type=click.Path(exists=True), required=True,
              help="Input file for the first step")
@click.option("--local", is_flag=True,
              help="Process in-process with pandas instead of the remote API")
@click.option("--output", "-o", "output_path", type=click.Path(),
              help="Write the final artifact here")
@click.option("--verbose", "-v", is_flag=True,
              help="Show detailed output")
@click.option("--env-file", type=click.Path(), help="Load settings from this env file")
def run(
    workflow_file: str,
    input_file: str,
    local: bool,
    output_path: str | None,
    verbose: bool,
    env_file: str | None,
):
    """Run a workflow on an input file."""

    setup_logging(verbose)
    config = reload_config(env_file)

    try:
        workflow = Workflow(load_workflow(workflow_file))
        service = get_processing_service("local" if local else None, config)
    except (WorkflowError, ValueError) as e:
        print_error("Cannot load workflow", str(e))
        sys.exit(1)

    console.print()
    console.print(Panel(
        f"[bold]Tabflow Workflow Runner[/bold]\n\n"
        f"Workflow: {workflow.name}\n"
        f"Input: {Path(input_file).name}\n"
        f"Steps: {len(workflow.get_enabled_steps())} enabled\n"
        f"Processing: {service.name}",
        border_style="blue"
    ))
    console.print()

    context = WorkflowContext(workflow.id, Artifact.from_file(input_file))
    executor = WorkflowExecutor(workflow, context, service=service)
    executor.set_callbacks(
        on_step_start=lambda step, index: console.print(
            f"  [yellow]▶[/yellow] [{index}] {step.name} ({step.type})"
        ),
        on_step_complete=lambda step, result: console.print(
            f"  [green]✓[/green] {step.name}: {result.output.describe()}"
        ),
        on_step_error=lambda step, error: console.print(
            f"  [red]✗[/red] {step.name}: {error.message}"
        ),
    )

    try:
        context = asyncio.run(_execute(executor, service, output_path))
    except WorkflowError as e:
        print_error("Workflow failed to start", str(e))
        sys.exit(1)

    console.print()
    console.print(results_table(workflow, context.get_step_results()))

    if context.status != WorkflowStatus.COMPLETED:
        console.print(f"\n[red]Workflow {context.status.value}[/red]")
        sys.exit(1)

    console.print(f"\n[green]✓[/green] Workflow completed: {context.current_artifact.describe()}")
    if output_path:
        console.print(f"  Output written to {output_path}")


async def _execute(
    executor: WorkflowExecutor,
    service: ProcessingService,
    output_path: str | None,
) -> WorkflowContext:
    async with service:
        context = await executor.execute()
        if output_path and context.status == WorkflowStatus.COMPLETED:
            await write_artifact(context.current_artifact, Path(output_path), service)
    return context


async def write_artifact(artifact: Artifact, path: Path, service: ProcessingService) -> Path:
    """Save an artifact's content to a local file."""
    path.parent.mkdir(parents=True, exist_ok=True)

    if artifact.is_table:
        suffix = path.suffix.lower()
        if suffix == ".json":
            artifact.table.to_json(path, orient="records", indent=2)
        elif suffix == ".tsv":
            artifact.table.to_csv(path, sep="\t", index=False)
        else:
            artifact.table.to_csv(path, index=False)
    elif artifact.is_text:
        path.write_text(artifact.text)
    elif artifact.path is not None:
        shutil.copyfile(artifact.path, path)
    elif artifact.url and isinstance(service, RemoteProcessingService):
        path.write_bytes(await service.download(artifact))
    else:
        raise WorkflowError(f"Cannot save artifact {artifact.name}")
    return path


def results_table(workflow: Workflow, results: list[StepResult]) -> Table:
    table = Table(title=f"{workflow.name}")
    table.add_column("#", justify="right")
    table.add_column("Step", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Time", justify="right")
    table.add_column("Result")

    for index, result in enumerate(results):
        step = workflow.get_step_by_id(result.step_id)
        style = STATUS_STYLES.get(result.status, "")
        duration = f"{result.duration_ms / 1000:.2f}s" if result.finished_at else ""
        if result.error:
            detail = f"[red]{result.error.message}[/red]"
        elif result.output:
            detail = result.output.describe()
        else:
            detail = ""
        table.add_row(
            str(index),
            step.name if step else result.step_id,
            result.step_type,
            f"[{style}]{result.status.value}[/{style}]" if style else result.status.value,
            duration,
            detail,
        )
    return table


@cli.command()
@click.argument("workflow_file", metavar="WORKFLOW", type=click.Path(exists=True))
def validate(workflow_file: str):
    """Validate a workflow file without running it."""

    try:
        workflow = Workflow(load_workflow(workflow_file))
    except WorkflowError as e:
        console.print(f"[red]✗[/red] Cannot load workflow: {e}")
        sys.exit(1)

    validation = workflow.validate()
    if not validation.valid:
        console.print(f"[red]✗[/red] Workflow '{workflow.name}' has errors:")
        for step_id, errors in validation.errors.items():
            for error in errors:
                console.print(f"  • {step_id}: {error}")
        sys.exit(1)

    console.print(f"[green]✓[/green] Workflow '{workflow.name}' is valid")
    console.print()

    table = Table(title="Workflow Summary")
    table.add_column("Property", style="cyan")
    table.add_column("Value")

    table.add_row("Name", workflow.name)
    table.add_row("ID", workflow.id)
    table.add_row("Steps", str(workflow.get_step_count()))
    table.add_row("Enabled", str(len(workflow.get_enabled_steps())))

    console.print(table)


@cli.command()
@click.argument("workflow_file", metavar="WORKFLOW", type=click.Path(exists=True))
def show(workflow_file: str):
    """Show workflow structure and step configuration."""

    try:
        workflow = Workflow(load_workflow(workflow_file))
    except WorkflowError as e:
        print_error("Cannot load workflow", str(e))
        sys.exit(1)

    console.print()
    console.print(Panel(
        f"[bold]{workflow.name}[/bold]\n\n{workflow.description}"
        if workflow.description else f"[bold]{workflow.name}[/bold]",
        title="Workflow",
        border_style="blue"
    ))

    console.print("\n[bold]Steps:[/bold]")
    for step in workflow.get_steps():
        flag = "" if step.enabled else " [dim](disabled)[/dim]"
        console.print(f"  • {step.id} ({step.type}){flag}")
        for key, value in step.get_config().config.items():
            display_value = str(value)[:60] + "..." if len(str(value)) > 60 else str(value)
            console.print(f"      {key}: {display_value}")


@cli.command()
def types():
    """List the available step types."""

    table = Table(title="Step Types")
    table.add_column("Type", style="cyan")
    table.add_column("Name")
    table.add_column("Description")

    for info in available_step_types():
        table.add_row(info["type"], info["name"], info["description"])

    console.print(table)


if __name__ == "__main__":
    cli()
