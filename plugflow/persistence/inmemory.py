"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Optional

from ..contracts import RunOutcome, RunStatus, WorkflowDefinition
from .models import StepLogEntry, WorkflowRun
from .repository import WorkflowRepository

_ENGINE_OWNED_FIELDS = (
    "run_count",
    "success_count",
    "failure_count",
    "last_run_at",
    "last_run_status",
    "created_at",
)


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflows and runs in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts. Records are copied on the way in and
    out so callers never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}
        self._runs: Dict[str, WorkflowRun] = {}
        self._aggregate_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    async def save_definition(self, definition: WorkflowDefinition) -> None:
        stored = definition.model_copy(deep=True)
        existing = self._definitions.get(definition.id)
        if existing:
            # run statistics belong to the engine, not to the author
            for field in _ENGINE_OWNED_FIELDS:
                setattr(stored, field, getattr(existing, field))
        self._definitions[definition.id] = stored

    async def get_definition(self, workflow_id: str) -> WorkflowDefinition | None:
        definition = self._definitions.get(workflow_id)
        return definition.model_copy(deep=True) if definition else None

    async def list_definitions(self) -> list[WorkflowDefinition]:
        return [d.model_copy(deep=True) for d in self._definitions.values()]

    # ------------------------------------------------------------------
    async def create_run(self, run: WorkflowRun) -> None:
        self._runs[run.id] = run.model_copy(deep=True)

    async def append_step_log(self, run_id: str, entry: StepLogEntry) -> None:
        run = self._runs.get(run_id)
        if run:
            run.execution_log.append(entry.model_copy(deep=True))

    async def persist_progress(
        self,
        run_id: str,
        current_step: int,
        context: dict[str, Any],
        entry: Optional[StepLogEntry] = None,
    ) -> None:
        run = self._runs.get(run_id)
        if run:
            if entry is not None:
                run.execution_log.append(entry.model_copy(deep=True))
            run.current_step = current_step
            run.context = dict(context)

    async def finalize_run(
        self,
        run_id: str,
        status: RunStatus,
        completed_at: datetime,
        error_step: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        run = self._runs.get(run_id)
        if run:
            run.status = RunStatus(status)
            run.completed_at = completed_at
            run.error_step = error_step
            run.error_message = error_message

    async def update_workflow_aggregates(
        self, workflow_id: str, status: RunStatus, finished_at: datetime
    ) -> None:
        async with self._aggregate_locks[workflow_id]:
            definition = self._definitions.get(workflow_id)
            if not definition:
                return
            definition.run_count += 1
            if status == RunStatus.COMPLETED:
                definition.success_count += 1
            elif status == RunStatus.FAILED:
                definition.failure_count += 1
            definition.last_run_at = finished_at
            definition.last_run_status = RunOutcome.from_status(status)

    async def request_cancel(self, run_id: str) -> bool:
        run = self._runs.get(run_id)
        if run is None or run.status != RunStatus.RUNNING:
            return False
        run.cancel_requested = True
        return True

    async def is_cancel_requested(self, run_id: str) -> bool:
        run = self._runs.get(run_id)
        return bool(run and run.cancel_requested)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def list_runs(self, workflow_id: str, limit: int = 50) -> list[WorkflowRun]:
        runs = [r for r in self._runs.values() if r.workflow_id == workflow_id]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return [r.model_copy(deep=True) for r in runs[:limit]]
