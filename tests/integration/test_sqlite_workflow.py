import asyncio

import pytest

from plugflow.contracts import RunOutcome, RunStatus, StepStatus, TriggerSource
from plugflow.engine import WorkflowExecutor
from plugflow.persistence import SQLiteWorkflowRepository


@pytest.mark.asyncio
async def test_series_workflow_persists_to_sqlite(tmp_path, series_workflow, series_dispatcher):
    repo_path = tmp_path / "plugflow.db"
    repo = SQLiteWorkflowRepository(repo_path)
    await repo.save_definition(series_workflow)

    executor = WorkflowExecutor(repository=repo, dispatcher=series_dispatcher)
    result = await executor.execute(
        series_workflow.id,
        triggered_by=TriggerSource.SCHEDULE,
        variables={"seriesName": "My Series"},
    )
    assert result.status == RunStatus.COMPLETED
    repo.close()

    # reopen to read back what a different process would see
    repo = SQLiteWorkflowRepository(repo_path)
    run = await repo.get_run(result.run_id)
    assert run.status == RunStatus.COMPLETED
    assert run.triggered_by == TriggerSource.SCHEDULE
    assert run.current_step == run.total_steps == 3
    assert run.context == {
        "seriesId": "S1",
        "seriesName": "My Series",
        "outlineId": "O1",
        "draftId": "D1",
    }
    assert [(e.step_id, e.status) for e in run.execution_log] == [
        ("step-1", StepStatus.SUCCESS),
        ("step-2", StepStatus.SUCCESS),
        ("step-3", StepStatus.SUCCESS),
    ]
    assert run.execution_log[2].outputs == {"draftId": "D1"}

    definition = await repo.get_definition(series_workflow.id)
    assert definition.run_count == 1
    assert definition.success_count == 1
    assert definition.last_run_status == RunOutcome.SUCCESS
    repo.close()


@pytest.mark.asyncio
async def test_failed_run_keeps_progress_in_sqlite(tmp_path, series_workflow, series_dispatcher):
    def locked(config):
        raise RuntimeError(f"Series {config['seriesId']} is locked")

    series_dispatcher.register("bq-studio", "draft-chapter", locked)
    repo = SQLiteWorkflowRepository(tmp_path / "plugflow.db")
    await repo.save_definition(series_workflow)
    executor = WorkflowExecutor(repository=repo, dispatcher=series_dispatcher)

    result = await executor.execute(series_workflow.id, variables={"seriesName": "X"})

    run = await repo.get_run(result.run_id)
    assert run.status == RunStatus.FAILED
    assert run.error_step == 2
    assert run.error_message == "Series S1 is locked"
    assert run.current_step == 2
    assert set(run.context) == {"seriesName", "seriesId", "outlineId"}
    assert [e.status for e in run.execution_log] == [
        StepStatus.SUCCESS,
        StepStatus.SUCCESS,
        StepStatus.FAILED,
    ]
    assert run.execution_log[2].error == "Series S1 is locked"
    repo.close()


@pytest.mark.asyncio
async def test_concurrent_runs_update_sqlite_counters(tmp_path, series_workflow, series_dispatcher):
    repo = SQLiteWorkflowRepository(tmp_path / "plugflow.db")
    await repo.save_definition(series_workflow)
    executor = WorkflowExecutor(repository=repo, dispatcher=series_dispatcher)

    results = await asyncio.gather(
        *(
            executor.execute(series_workflow.id, variables={"seriesName": f"Series {i}"})
            for i in range(8)
        )
    )

    assert all(r.status == RunStatus.COMPLETED for r in results)
    definition = await repo.get_definition(series_workflow.id)
    assert definition.run_count == 8
    assert definition.success_count == 8
    assert definition.failure_count == 0
    assert len(await repo.list_runs(series_workflow.id)) == 8
    repo.close()
