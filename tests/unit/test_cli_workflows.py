import asyncio
import json

import pytest
from typer.testing import CliRunner

import plugflow.persistence as persistence
from plugflow.cli import app
from plugflow.contracts import RunStatus
from plugflow.persistence import InMemoryWorkflowRepository, WorkflowRun


@pytest.fixture
def repo(monkeypatch) -> InMemoryWorkflowRepository:
    repo = InMemoryWorkflowRepository()
    monkeypatch.setattr(persistence, "_repository_instance", repo)
    return repo


def test_workflows_command_lists_workflows(repo, series_workflow):
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.output
    assert "No workflows found" in result.output

    asyncio.run(repo.save_definition(series_workflow))
    result = runner.invoke(app, ["workflow", "list"])
    assert result.exit_code == 0, result.output
    assert series_workflow.id in result.output
    assert "New Series Creation Pipeline" in result.output
    assert "runs=0 ok=0 failed=0" in result.output


def test_workflow_command_shows_details_and_missing(repo, series_workflow):
    asyncio.run(repo.save_definition(series_workflow))

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "show", series_workflow.id])
    assert result.exit_code == 0, result.output
    assert series_workflow.id in result.output
    assert "step-2 - Generate Outline: bq-studio.generate-outline" in result.output
    assert "outlineId <- $.result.outlineId" in result.output

    result_missing = runner.invoke(app, ["workflow", "show", "missing-id"])
    assert result_missing.exit_code == 1
    assert "Workflow not found" in result_missing.output


def test_workflow_import(repo, tmp_path, series_workflow):
    path = tmp_path / "series.json"
    path.write_text(series_workflow.to_json())

    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "import", str(path)])
    assert result.exit_code == 0, result.output
    assert f"Imported {series_workflow.id}" in result.output
    assert asyncio.run(repo.get_definition(series_workflow.id)) is not None

    missing = runner.invoke(app, ["workflow", "import", str(tmp_path / "absent.json")])
    assert missing.exit_code == 1
    assert "Specified path does not exist" in missing.output

    broken = tmp_path / "broken.json"
    broken.write_text('{"steps": "nope"}')
    invalid = runner.invoke(app, ["workflow", "import", str(broken)])
    assert invalid.exit_code == 1
    assert "Invalid workflow file" in invalid.output


def test_workflow_run_executes_and_reports(
    repo, monkeypatch, series_workflow, series_dispatcher
):
    asyncio.run(repo.save_definition(series_workflow))
    monkeypatch.setattr("plugflow.cli.get_dispatcher", lambda: series_dispatcher)

    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "workflow",
            "run",
            series_workflow.id,
            "--user",
            "alice",
            "--var",
            "seriesName=My Series",
        ],
    )
    assert result.exit_code == 0, result.output
    assert ": completed" in result.output
    assert "Steps: 3/3" in result.output
    context_line = next(
        line for line in result.output.splitlines() if line.startswith("Context: ")
    )
    assert json.loads(context_line[len("Context: "):]) == {
        "seriesName": "My Series",
        "seriesId": "S1",
        "outlineId": "O1",
        "draftId": "D1",
    }

    [run] = asyncio.run(repo.list_runs(series_workflow.id))
    assert run.status == RunStatus.COMPLETED
    assert run.triggered_by_user == "alice"


def test_workflow_run_failure_exit_codes(repo, monkeypatch, series_workflow, series_dispatcher):
    asyncio.run(repo.save_definition(series_workflow))
    monkeypatch.setattr("plugflow.cli.get_dispatcher", lambda: series_dispatcher)
    runner = CliRunner()

    # seriesName is never provided, so step-1 cannot resolve its config
    failed = runner.invoke(app, ["workflow", "run", series_workflow.id])
    assert failed.exit_code == 2
    assert "Error at step 0: Unresolved reference: {{seriesName}}" in failed.output

    missing = runner.invoke(app, ["workflow", "run", "missing-id"])
    assert missing.exit_code == 1
    assert "Workflow not found" in missing.output


def test_run_commands(repo, monkeypatch, series_workflow, series_dispatcher):
    asyncio.run(repo.save_definition(series_workflow))
    monkeypatch.setattr("plugflow.cli.get_dispatcher", lambda: series_dispatcher)
    runner = CliRunner()

    empty = runner.invoke(app, ["run", "list", series_workflow.id])
    assert empty.exit_code == 0
    assert "No runs found" in empty.output

    runner.invoke(app, ["workflow", "run", series_workflow.id, "--var", "seriesName=X"])
    [run] = asyncio.run(repo.list_runs(series_workflow.id))

    listed = runner.invoke(app, ["run", "list", series_workflow.id])
    assert listed.exit_code == 0
    assert f"{run.id}\tcompleted\t3/3" in listed.output

    shown = runner.invoke(app, ["run", "show", run.id])
    assert shown.exit_code == 0, shown.output
    assert f"Run {run.id}: completed (3/3)" in shown.output
    assert "- step-1: success" in shown.output
    assert "- step-3: success" in shown.output

    missing = runner.invoke(app, ["run", "show", "missing-run"])
    assert missing.exit_code == 1
    assert "Run not found" in missing.output


def test_run_cancel_flags_running_run(repo, series_workflow):
    asyncio.run(repo.save_definition(series_workflow))
    run = WorkflowRun(workflow_id=series_workflow.id, total_steps=3)
    asyncio.run(repo.create_run(run))

    runner = CliRunner()
    result = runner.invoke(app, ["run", "cancel", run.id])
    assert result.exit_code == 0, result.output
    assert f"Cancellation requested for run {run.id}" in result.output
    assert asyncio.run(repo.is_cancel_requested(run.id)) is True

    missing = runner.invoke(app, ["run", "cancel", "missing-run"])
    assert missing.exit_code == 1
    assert "Run not found or not running" in missing.output
