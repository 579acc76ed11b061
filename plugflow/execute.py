"""Execution of a single workflow step."""

from __future__ import annotations

import logging

from .context import RunContext
from .contracts import StepStatus, WorkflowStep, utcnow
from .dispatchers import ActionDispatcher
from .errors import DispatchError, StepExecutionError
from .extraction import extract_outputs
from .interpolation import interpolate
from .persistence.models import StepLogEntry, WorkflowRun

logger = logging.getLogger(__name__)


class StepFailure(Exception):
    """Carries the failed log entry and the error that aborted the step."""

    def __init__(self, entry: StepLogEntry, error: StepExecutionError) -> None:
        super().__init__(str(error))
        self.entry = entry
        self.error = error


class StepExecutor:
    """Runs one step: interpolate config, dispatch, extract outputs.

    On success the step's outputs are merged into ``context`` and a success
    entry is appended to ``run.execution_log``. On failure a failed entry is
    appended and :class:`StepFailure` is raised; the context is left as it
    was before the step started.
    """

    def __init__(self, dispatcher: ActionDispatcher) -> None:
        self._dispatcher = dispatcher

    async def execute(
        self,
        run: WorkflowRun,
        step: WorkflowStep,
        index: int,
        context: RunContext,
    ) -> StepLogEntry:
        started_at = utcnow()
        try:
            config = interpolate(step.config, context)
            logger.debug(
                f"Dispatching {step.plugin_id}.{step.action} for run_id={run.id} step={step.id}"
            )
            result = await self._call(step, config)
            outputs = extract_outputs(result, step.output_mapping)
        except StepExecutionError as e:
            entry = StepLogEntry(
                step_id=step.id,
                step_index=index,
                status=StepStatus.FAILED,
                started_at=started_at,
                completed_at=utcnow(),
                error=str(e),
            )
            run.execution_log.append(entry)
            raise StepFailure(entry, e) from e

        context.merge(step.id, outputs)
        entry = StepLogEntry(
            step_id=step.id,
            step_index=index,
            status=StepStatus.SUCCESS,
            started_at=started_at,
            completed_at=utcnow(),
            outputs=outputs,
        )
        run.execution_log.append(entry)
        run.context = context.snapshot()
        return entry

    async def _call(self, step: WorkflowStep, config: dict) -> object:
        try:
            return await self._dispatcher.dispatch(step.plugin_id, step.action, config)
        except StepExecutionError:
            raise
        except Exception as e:
            # Any other exception fails the step like a dispatch error.
            logger.exception(f"Unexpected error dispatching {step.plugin_id}.{step.action}")
            raise DispatchError(str(e) or type(e).__name__, code="UNEXPECTED_ERROR") from e
