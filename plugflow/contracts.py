"""Core contracts for plugflow: workflow definitions, triggers and dispatch payloads."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, JsonValue
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, accepting either form on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        """Serialize to camelCase JSON."""
        return self.model_dump_json(by_alias=True)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-compatible camelCase dict."""
        return self.model_dump(mode="json", by_alias=True)


class TargetType(str, Enum):
    SERIES = "series"
    BOOK = "book"
    CHAPTER = "chapter"
    GLOBAL = "global"


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class RunOutcome(str, Enum):
    """Outcome recorded in a workflow's ``last_run_status``."""

    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def from_status(cls, status: RunStatus) -> "RunOutcome":
        return _OUTCOMES[RunStatus(status)]


_OUTCOMES = {
    RunStatus.COMPLETED: RunOutcome.SUCCESS,
    RunStatus.FAILED: RunOutcome.FAILED,
    RunStatus.CANCELLED: RunOutcome.CANCELLED,
}


class TriggerSource(str, Enum):
    MANUAL = "manual"
    SCHEDULE = "schedule"
    EVENT = "event"
    API = "api"


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class WorkflowStep(CamelModel):
    """One plugin action within a workflow."""

    id: str
    name: str = ""
    plugin_id: str
    action: str
    config: Dict[str, JsonValue] = Field(default_factory=dict)
    output_mapping: Dict[str, str] = Field(default_factory=dict)


class WorkflowDefinition(CamelModel):
    """A named, ordered chain of plugin steps plus its run statistics."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: Optional[str] = None
    target_type: Optional[TargetType] = None
    target_id: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)
    status: WorkflowStatus = WorkflowStatus.DRAFT
    version: int = 1
    auto_run: bool = False
    schedule_cron: Optional[str] = None

    run_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_run_at: Optional[datetime] = None
    last_run_status: Optional[RunOutcome] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    created_by: Optional[str] = None

    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]


class TriggerRequest(CamelModel):
    """Request to start a run of a workflow."""

    workflow_id: str
    triggered_by: TriggerSource = TriggerSource.MANUAL
    triggered_by_user: Optional[str] = None
    variables: Dict[str, JsonValue] = Field(default_factory=dict)


class TriggerMessage(CamelModel):
    """Envelope carrying a trigger request through a trigger queue."""

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=utcnow)
    trigger: TriggerRequest
    schema_version: str = "1.0"

    @classmethod
    def from_json(cls, data: str | bytes) -> "TriggerMessage":
        """Deserialize message from JSON."""
        return cls.model_validate_json(data)


class DispatchRequest(CamelModel):
    """Wire request sent to the plugin action dispatcher."""

    plugin_id: str
    action: str
    config: Dict[str, JsonValue] = Field(default_factory=dict)


class DispatchErrorBody(BaseModel):
    code: str = "DISPATCH_ERROR"
    message: str


class DispatchResponse(BaseModel):
    """Wire response: either ``result`` or ``error`` is present."""

    result: JsonValue = None
    error: Optional[DispatchErrorBody] = None


__all__ = [
    "CamelModel",
    "TargetType",
    "WorkflowStatus",
    "RunStatus",
    "RunOutcome",
    "TriggerSource",
    "StepStatus",
    "WorkflowStep",
    "WorkflowDefinition",
    "TriggerRequest",
    "TriggerMessage",
    "DispatchRequest",
    "DispatchErrorBody",
    "DispatchResponse",
    "utcnow",
]
