"""Exception hierarchy for the workflow engine."""

from __future__ import annotations

from typing import Optional


class PlugflowError(Exception):
    """Base class for all plugflow errors."""


class DefinitionNotFound(PlugflowError):
    """Raised when a workflow id does not resolve to a stored definition."""

    def __init__(self, workflow_id: str) -> None:
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class InvalidWorkflowDefinition(PlugflowError):
    """Raised when a definition cannot be run as written."""


class RunNotFound(PlugflowError):
    """Raised when a run id does not resolve to a stored run."""

    def __init__(self, run_id: str) -> None:
        super().__init__(f"Workflow run not found: {run_id}")
        self.run_id = run_id


class StepExecutionError(PlugflowError):
    """Base for failures that abort the step in progress and fail the run."""


class UnresolvedReferenceError(StepExecutionError):
    """An interpolation reference has no value in the run context."""

    def __init__(self, reference: str) -> None:
        super().__init__(f"Unresolved reference: {{{{{reference}}}}}")
        self.reference = reference


class PathNotFoundError(StepExecutionError):
    """An output path expression did not locate a value in a step result."""

    def __init__(self, path: str, reason: Optional[str] = None) -> None:
        message = f"Path not found: {path}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.path = path


class DispatchError(StepExecutionError):
    """The action dispatcher reported a failure.

    ``str(error)`` is the dispatcher's message verbatim, which is what ends up
    in the run's ``error_message``.
    """

    def __init__(self, message: str, code: str = "DISPATCH_ERROR") -> None:
        super().__init__(message)
        self.code = code
        self.message = message


class PersistenceError(PlugflowError):
    """A durable write failed; the run cannot continue."""


__all__ = [
    "PlugflowError",
    "DefinitionNotFound",
    "InvalidWorkflowDefinition",
    "RunNotFound",
    "StepExecutionError",
    "UnresolvedReferenceError",
    "PathNotFoundError",
    "DispatchError",
    "PersistenceError",
]
