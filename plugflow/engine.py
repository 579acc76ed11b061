"""Workflow execution engine: owns the lifecycle of workflow runs."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .config import PlugflowConfig
from .context import RunContext
from .contracts import (
    RunStatus,
    TriggerRequest,
    TriggerSource,
    WorkflowDefinition,
    WorkflowStatus,
    WorkflowStep,
    utcnow,
)
from .dispatchers import ActionDispatcher, get_dispatcher
from .errors import (
    DefinitionNotFound,
    InvalidWorkflowDefinition,
    PathNotFoundError,
    PersistenceError,
    RunNotFound,
)
from .execute import StepExecutor, StepFailure
from .extraction import parse_path
from .interpolation import find_references
from .persistence import RunResult, WorkflowRepository, WorkflowRun, get_repository

logger = logging.getLogger(__name__)


def validate_definition(definition: WorkflowDefinition) -> None:
    """Reject definitions that cannot be run.

    Raises:
        InvalidWorkflowDefinition: For archived workflows, missing or
            duplicate step ids, malformed output paths, or a ``stepId.key``
            reference to the step itself or to a later step.
    """
    if definition.status == WorkflowStatus.ARCHIVED:
        raise InvalidWorkflowDefinition(
            f"Workflow {definition.id} is archived and cannot be run"
        )

    positions: dict[str, int] = {}
    for index, step in enumerate(definition.steps):
        if not step.id:
            raise InvalidWorkflowDefinition(f"Step {index} has no id")
        if step.id in positions:
            raise InvalidWorkflowDefinition(f"Duplicate step id: {step.id}")
        positions[step.id] = index
        for name, path in step.output_mapping.items():
            try:
                parse_path(path)
            except PathNotFoundError as e:
                raise InvalidWorkflowDefinition(
                    f"Step {step.id} output '{name}': {e}"
                ) from e

    for index, step in enumerate(definition.steps):
        for reference in find_references(step.config):
            step_id, sep, _ = reference.partition(".")
            if sep and positions.get(step_id, -1) >= index:
                raise InvalidWorkflowDefinition(
                    f"Step {step.id} references {{{{{reference}}}}} before "
                    f"step {step_id} has run"
                )


class WorkflowExecutor:
    """Runs workflow definitions step by step against an action dispatcher.

    Steps of one run execute strictly in order. Distinct runs may execute
    concurrently as separate tasks; they share only the repository.
    """

    def __init__(
        self,
        repository: WorkflowRepository | None = None,
        dispatcher: ActionDispatcher | None = None,
        config: Optional[PlugflowConfig] = None,
    ) -> None:
        self._repository = repository or get_repository(config=config)
        self._dispatcher = dispatcher or get_dispatcher(config=config)
        self._step_executor = StepExecutor(self._dispatcher)
        self._cancel_events: Dict[str, asyncio.Event] = {}
        self._tasks: Dict[str, asyncio.Task[RunResult]] = {}

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    @property
    def dispatcher(self) -> ActionDispatcher:
        return self._dispatcher

    # ------------------------------------------------------------------
    # Public API
    async def execute(
        self,
        workflow_id: str,
        triggered_by: TriggerSource = TriggerSource.MANUAL,
        triggered_by_user: Optional[str] = None,
        variables: Optional[Mapping[str, Any]] = None,
    ) -> RunResult:
        """Run a workflow to completion and return the outcome.

        Raises:
            DefinitionNotFound: If ``workflow_id`` is unknown. No run is created.
            InvalidWorkflowDefinition: If the definition cannot be run.
            PersistenceError: If a durable write fails during the run.
        """
        trigger = TriggerRequest(
            workflow_id=workflow_id,
            triggered_by=triggered_by,
            triggered_by_user=triggered_by_user,
            variables=dict(variables or {}),
        )
        run, steps, context = await self._begin(trigger)
        return await self._run_steps(run, steps, context)

    async def start(self, trigger: TriggerRequest) -> str:
        """Accept a trigger, create the run and execute it in the background.

        Returns the run id as soon as the run record is persisted.
        """
        run, steps, context = await self._begin(trigger)
        task = asyncio.create_task(
            self._run_steps(run, steps, context), name=f"workflow-run-{run.id}"
        )
        self._tasks[run.id] = task
        task.add_done_callback(lambda t, run_id=run.id: self._on_task_done(run_id, t))
        return run.id

    async def wait(self, run_id: str) -> RunResult:
        """Wait for a background run and return its outcome."""
        task = self._tasks.get(run_id)
        if task is not None:
            return await task
        run = await self._persist(self._repository.get_run, run_id)
        if run is None:
            raise RunNotFound(run_id)
        return RunResult.from_run(run)

    async def cancel(self, run_id: str) -> bool:
        """Request cancellation of a running run.

        The request is stored in the repository, so a run executing in
        another process sharing the same store also stops. The run stops
        before its next step begins; an in-flight dispatch is never
        interrupted. Returns ``False`` when the run is unknown or finished.
        """
        event = self._cancel_events.get(run_id)
        if event is not None:
            event.set()
        accepted = await self._persist(self._repository.request_cancel, run_id)
        if event is None and not accepted:
            return False
        logger.info(f"Cancellation requested for run_id={run_id}")
        return True

    def active_runs(self) -> List[str]:
        return list(self._cancel_events)

    async def get_run(self, run_id: str) -> WorkflowRun:
        run = await self._persist(self._repository.get_run, run_id)
        if run is None:
            raise RunNotFound(run_id)
        return run

    async def list_runs(self, workflow_id: str, limit: int = 50) -> list[WorkflowRun]:
        return await self._persist(self._repository.list_runs, workflow_id, limit)

    # ------------------------------------------------------------------
    # Run lifecycle
    async def _begin(
        self, trigger: TriggerRequest
    ) -> tuple[WorkflowRun, list[WorkflowStep], RunContext]:
        definition = await self._persist(
            self._repository.get_definition, trigger.workflow_id
        )
        if definition is None:
            raise DefinitionNotFound(trigger.workflow_id)
        validate_definition(definition)

        steps = [step.model_copy(deep=True) for step in definition.steps]
        context = RunContext(trigger.variables)
        run = WorkflowRun(
            workflow_id=definition.id,
            total_steps=len(steps),
            context=context.snapshot(),
            triggered_by=trigger.triggered_by,
            triggered_by_user=trigger.triggered_by_user,
        )
        await self._persist(self._repository.create_run, run)
        self._cancel_events[run.id] = asyncio.Event()
        logger.info(
            f"Started run_id={run.id} for workflow {definition.id} ({definition.name}) "
            f"with {len(steps)} steps, triggered_by={run.triggered_by.value}"
        )
        return run, steps, context

    async def _run_steps(
        self, run: WorkflowRun, steps: list[WorkflowStep], context: RunContext
    ) -> RunResult:
        step_index = 0
        try:
            for index, step in enumerate(steps):
                step_index = index
                if await self._cancel_requested(run.id):
                    return await self._finalize(run, RunStatus.CANCELLED)

                logger.info(
                    f"Executing step {index + 1}/{run.total_steps} '{step.name or step.id}' "
                    f"for run_id={run.id}"
                )
                try:
                    entry = await self._step_executor.execute(run, step, index, context)
                except StepFailure as failure:
                    logger.error(
                        f"Step {step.id} failed for run_id={run.id}: {failure.error}"
                    )
                    await self._persist(
                        self._repository.append_step_log, run.id, failure.entry
                    )
                    return await self._finalize(
                        run,
                        RunStatus.FAILED,
                        error_step=index,
                        error_message=str(failure.error),
                    )

                # log entry and progress land in one write
                await self._persist(
                    self._repository.persist_progress,
                    run.id,
                    index + 1,
                    context.snapshot(),
                    entry,
                )
                run.current_step = index + 1

            return await self._finalize(run, RunStatus.COMPLETED)
        except PersistenceError as e:
            await self._record_persistence_failure(run, e, step_index)
            raise
        finally:
            self._cancel_events.pop(run.id, None)

    async def _finalize(
        self,
        run: WorkflowRun,
        status: RunStatus,
        error_step: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> RunResult:
        run.status = status
        run.completed_at = utcnow()
        run.error_step = error_step
        run.error_message = error_message
        await self._persist(
            self._repository.finalize_run,
            run.id,
            status,
            run.completed_at,
            error_step,
            error_message,
        )
        await self._persist(
            self._repository.update_workflow_aggregates,
            run.workflow_id,
            status,
            run.completed_at,
        )
        logger.info(
            f"Run run_id={run.id} finished with status={status.value} "
            f"after {run.current_step}/{run.total_steps} steps"
        )
        return RunResult.from_run(run)

    async def _record_persistence_failure(
        self, run: WorkflowRun, error: PersistenceError, step_index: int
    ) -> None:
        logger.error(f"Persistence failure for run_id={run.id}: {error}")
        run.status = RunStatus.FAILED
        run.completed_at = utcnow()
        run.error_step = step_index
        run.error_message = str(error)
        try:
            await self._repository.finalize_run(
                run.id,
                RunStatus.FAILED,
                run.completed_at,
                run.error_step,
                run.error_message,
            )
            await self._repository.update_workflow_aggregates(
                run.workflow_id, RunStatus.FAILED, run.completed_at
            )
        except Exception:
            logger.exception(f"Could not record failure of run_id={run.id}")

    # ------------------------------------------------------------------
    # Helpers
    async def _cancel_requested(self, run_id: str) -> bool:
        event = self._cancel_events.get(run_id)
        if event is not None and event.is_set():
            return True
        return await self._persist(self._repository.is_cancel_requested, run_id)

    def _on_task_done(self, run_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(run_id, None)
        if task.cancelled():
            logger.warning(f"Task for run_id={run_id} was cancelled")
        elif task.exception() is not None:
            logger.error(f"Run run_id={run_id} aborted: {task.exception()}")

    async def _persist(self, operation: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        try:
            return await operation(*args)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"{getattr(operation, '__name__', 'operation')} failed: {e}"
            ) from e
