"""Repository abstraction for workflow definitions and run records."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from ..contracts import RunStatus, WorkflowDefinition
from .models import StepLogEntry, WorkflowRun


class WorkflowRepository(Protocol):
    """Protocol for workflow persistence backends.

    Every write is durable when the call returns. Aggregate counter updates
    must be atomic with respect to concurrent callers.
    """

    async def save_definition(self, definition: WorkflowDefinition) -> None:
        """Insert or replace a workflow definition."""

    async def get_definition(self, workflow_id: str) -> WorkflowDefinition | None:
        """Retrieve a workflow definition by id."""

    async def list_definitions(self) -> list[WorkflowDefinition]:
        """Return all stored workflow definitions."""

    async def create_run(self, run: WorkflowRun) -> None:
        """Persist a newly started run."""

    async def append_step_log(self, run_id: str, entry: StepLogEntry) -> None:
        """Append an entry to the run's execution log."""

    async def persist_progress(
        self,
        run_id: str,
        current_step: int,
        context: dict[str, Any],
        entry: Optional[StepLogEntry] = None,
    ) -> None:
        """Record the index of the next step and the accumulated context.

        When ``entry`` is given it is appended to the execution log in the same
        write, so the log and ``current_step`` never disagree.
        """

    async def finalize_run(
        self,
        run_id: str,
        status: RunStatus,
        completed_at: datetime,
        error_step: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Move the run to a terminal status."""

    async def update_workflow_aggregates(
        self, workflow_id: str, status: RunStatus, finished_at: datetime
    ) -> None:
        """Atomically bump run counters and last-run fields of a workflow."""

    async def request_cancel(self, run_id: str) -> bool:
        """Flag a running run for cancellation.

        Returns ``False`` when the run does not exist or is no longer running.
        """

    async def is_cancel_requested(self, run_id: str) -> bool:
        """Return whether cancellation was requested for the run."""

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        """Retrieve a run by id."""

    async def list_runs(self, workflow_id: str, limit: int = 50) -> list[WorkflowRun]:
        """Return runs of a workflow, newest first."""
