"""Command line interface for managing and running plugflow workflows."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from pydantic import ValidationError

from plugflow import WorkflowExecutor, get_dispatcher, get_repository, get_trigger_queue
from plugflow.config import configure_logging, load_config
from plugflow.contracts import TriggerRequest, TriggerSource
from plugflow.definitions import load_definition_file
from plugflow.errors import DefinitionNotFound, InvalidWorkflowDefinition, PersistenceError
from plugflow.worker import TriggerWorker

app = typer.Typer(help="CLI for plugflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for managing workflows")
run_app = typer.Typer(help="Commands for inspecting workflow runs")

app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Override configured log level")
) -> None:
    """plugflow CLI entry point."""
    config = load_config()
    if log_level:
        config.log_level = log_level
    configure_logging(config)


def _parse_vars(pairs: List[str]) -> Dict[str, Any]:
    variables: Dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got '{pair}'")
        try:
            variables[key] = json.loads(raw)
        except json.JSONDecodeError:
            variables[key] = raw
    return variables


@workflow_app.command("list")
def workflow_list() -> None:
    """
    List stored workflow definitions with their run statistics.

    Example:
        plugflow workflow list
        # Output: 6f1c...  New Series Creation Pipeline  active  runs=3 ok=2 failed=1
    """
    repo = get_repository()
    definitions = asyncio.run(repo.list_definitions())
    if not definitions:
        typer.echo("No workflows found")
        return
    for wf in definitions:
        typer.echo(
            f"{wf.id}\t{wf.name}\t{wf.status.value}\t"
            f"runs={wf.run_count} ok={wf.success_count} failed={wf.failure_count}"
        )


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show a workflow definition and its steps."""
    repo = get_repository()
    wf = asyncio.run(repo.get_definition(workflow_id))
    if wf is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {wf.id}: {wf.name} ({wf.status.value}, v{wf.version})")
    if wf.description:
        typer.echo(f"Description: {wf.description}")
    if wf.last_run_at:
        typer.echo(f"Last run: {wf.last_run_at} ({wf.last_run_status.value})")
    for index, step in enumerate(wf.steps):
        typer.echo(f"{index}. {step.id} - {step.name}: {step.plugin_id}.{step.action}")
        for name, path in step.output_mapping.items():
            typer.echo(f"     {name} <- {path}")


@workflow_app.command("import")
def workflow_import(path: Path) -> None:
    """
    Import workflow definitions from a JSON or YAML file.

    Example:
        plugflow workflow import ./workflows/new-series.json
    """
    try:
        definitions = load_definition_file(path)
    except FileNotFoundError:
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except (ValueError, ValidationError) as exc:
        typer.secho(f"Invalid workflow file: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    repo = get_repository()

    async def _save() -> None:
        for definition in definitions:
            await repo.save_definition(definition)

    asyncio.run(_save())
    for definition in definitions:
        typer.echo(f"Imported {definition.id}\t{definition.name}")


@workflow_app.command("run")
def workflow_run(
    workflow_id: str,
    user: Optional[str] = typer.Option(None, help="User on whose behalf the run starts"),
    var: List[str] = typer.Option([], help="Initial context variable as key=value"),
    triggered_by: TriggerSource = typer.Option(TriggerSource.MANUAL, case_sensitive=False),
) -> None:
    """
    Execute a workflow in this process and wait for it to finish.

    Example:
        plugflow workflow run 6f1c... --user alice --var name="My Series"
    """
    variables = _parse_vars(var)
    executor = WorkflowExecutor(repository=get_repository(), dispatcher=get_dispatcher())
    try:
        result = asyncio.run(
            executor.execute(
                workflow_id,
                triggered_by=triggered_by,
                triggered_by_user=user,
                variables=variables,
            )
        )
    except DefinitionNotFound:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)
    except (InvalidWorkflowDefinition, PersistenceError) as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)

    typer.echo(f"Run {result.run_id}: {result.status.value}")
    typer.echo(f"Steps: {result.completed_steps}/{result.total_steps}")
    if result.context:
        typer.echo(f"Context: {json.dumps(result.context)}")
    if result.error:
        typer.secho(f"Error at step {result.error_step}: {result.error}", fg=typer.colors.RED)
        raise typer.Exit(code=2)


@workflow_app.command("trigger")
def workflow_trigger(
    workflow_id: str,
    user: Optional[str] = typer.Option(None, help="User on whose behalf the run starts"),
    var: List[str] = typer.Option([], help="Initial context variable as key=value"),
    triggered_by: TriggerSource = typer.Option(TriggerSource.API, case_sensitive=False),
) -> None:
    """Queue a trigger for a worker to pick up."""
    config = load_config()
    trigger = TriggerRequest(
        workflow_id=workflow_id,
        triggered_by=triggered_by,
        triggered_by_user=user,
        variables=_parse_vars(var),
    )
    queue = get_trigger_queue(config=config)

    async def _publish() -> str:
        try:
            message = await queue.enqueue(trigger)
        finally:
            await queue.disconnect()
        return message.message_id

    message_id = asyncio.run(_publish())
    typer.echo(f"Trigger queued: {message_id}")


@run_app.command("list")
def run_list(
    workflow_id: str, limit: int = typer.Option(50, help="Maximum runs to show")
) -> None:
    """List runs of a workflow, newest first."""
    repo = get_repository()
    runs = asyncio.run(repo.list_runs(workflow_id, limit))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(
            f"{run.id}\t{run.status.value}\t{run.current_step}/{run.total_steps}\t"
            f"{run.started_at.isoformat()}"
        )


@run_app.command("show")
def run_show(run_id: str) -> None:
    """
    Show a run with its context and step-by-step execution log.

    Example:
        plugflow run show 0b7e...
        # Output: Run 0b7e...: failed (1/3)
        #         Error at step 1: No handler for action 'generate-outline' ...
        #         - step-1: success (...)
    """
    repo = get_repository()
    run = asyncio.run(repo.get_run(run_id))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)
    typer.echo(
        f"Run {run.id}: {run.status.value} ({run.current_step}/{run.total_steps})"
    )
    typer.echo(f"Workflow: {run.workflow_id}, triggered by {run.triggered_by.value}")
    if run.error_message is not None:
        typer.echo(f"Error at step {run.error_step}: {run.error_message}")
    if run.context:
        typer.echo(f"Context: {json.dumps(run.context)}")
    for entry in run.execution_log:
        line = f"- {entry.step_id}: {entry.status.value} ({entry.started_at} -> {entry.completed_at})"
        if entry.error:
            line += f" error={entry.error}"
        typer.echo(line)


@run_app.command("cancel")
def run_cancel(run_id: str) -> None:
    """
    Ask a running run to stop before its next step.

    The request is stored with the run, so the process executing it picks
    it up at the next step boundary.

    Example:
        plugflow run cancel 0b7e...
    """
    repo = get_repository()
    if not asyncio.run(repo.request_cancel(run_id)):
        typer.echo("Run not found or not running")
        raise typer.Exit(code=1)
    typer.echo(f"Cancellation requested for run {run_id}")


@app.command("worker")
def worker(
    lifespan: Optional[float] = typer.Option(None, help="Seconds to run (default: forever)")
) -> None:
    """
    Run a worker that starts workflow runs from queued triggers.

    Example:
        plugflow worker --lifespan 300
    """
    config = load_config()
    queue = get_trigger_queue(config=config)
    executor = WorkflowExecutor(
        repository=get_repository(),
        dispatcher=get_dispatcher(config=config),
    )
    trigger_worker = TriggerWorker(queue, executor)
    typer.echo(f"Listening for triggers on '{queue.topic}'")
    asyncio.run(trigger_worker.start(lifespan=lifespan))


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
