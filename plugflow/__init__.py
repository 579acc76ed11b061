"""plugflow: durable execution of plugin-chaining workflows."""

from .context import RunContext
from .contracts import (
    RunOutcome,
    RunStatus,
    TriggerRequest,
    TriggerSource,
    WorkflowDefinition,
    WorkflowStatus,
    WorkflowStep,
)
from .definitions import load_definition_file
from .dispatchers import ActionDispatcher, InMemoryActionDispatcher, get_dispatcher
from .engine import WorkflowExecutor
from .errors import (
    DefinitionNotFound,
    DispatchError,
    PathNotFoundError,
    PersistenceError,
    PlugflowError,
    UnresolvedReferenceError,
)
from .execute import StepExecutor
from .extraction import extract_outputs, extract_path
from .interpolation import interpolate
from .persistence import RunResult, WorkflowRun, get_repository
from .triggers import get_trigger_queue

__version__ = "0.1.0"
__all__ = [
    "ActionDispatcher",
    "DefinitionNotFound",
    "DispatchError",
    "InMemoryActionDispatcher",
    "PathNotFoundError",
    "PersistenceError",
    "PlugflowError",
    "RunContext",
    "RunResult",
    "RunOutcome",
    "RunStatus",
    "StepExecutor",
    "TriggerRequest",
    "TriggerSource",
    "UnresolvedReferenceError",
    "WorkflowDefinition",
    "WorkflowExecutor",
    "WorkflowRun",
    "WorkflowStatus",
    "WorkflowStep",
    "extract_outputs",
    "extract_path",
    "get_dispatcher",
    "get_repository",
    "get_trigger_queue",
    "interpolate",
    "load_definition_file",
]
