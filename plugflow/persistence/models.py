"""Data models for persisted workflow run state."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import Field, JsonValue

from ..contracts import CamelModel, RunStatus, StepStatus, TriggerSource, utcnow


class StepLogEntry(CamelModel):
    """Record of an individual step execution."""

    step_id: str
    step_index: int
    status: StepStatus
    started_at: datetime
    completed_at: datetime
    outputs: Optional[dict[str, JsonValue]] = None
    error: Optional[str] = None


class WorkflowRun(CamelModel):
    """Persisted workflow run data."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    status: RunStatus = RunStatus.RUNNING
    current_step: int = 0
    total_steps: int
    execution_log: list[StepLogEntry] = Field(default_factory=list)
    context: dict[str, JsonValue] = Field(default_factory=dict)
    error_message: Optional[str] = None
    error_step: Optional[int] = None
    triggered_by: TriggerSource = TriggerSource.MANUAL
    triggered_by_user: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    cancel_requested: bool = False

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal


class RunResult(CamelModel):
    """Outcome of a run as reported to the caller."""

    run_id: str
    workflow_id: str
    status: RunStatus
    completed_steps: int
    total_steps: int
    context: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    error_step: Optional[int] = None

    @property
    def success(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @classmethod
    def from_run(cls, run: WorkflowRun) -> "RunResult":
        return cls(
            run_id=run.id,
            workflow_id=run.workflow_id,
            status=run.status,
            completed_steps=run.current_step,
            total_steps=run.total_steps,
            context=dict(run.context),
            error=run.error_message,
            error_step=run.error_step,
        )
