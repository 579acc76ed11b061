"""Trigger worker: turns queued trigger messages into workflow runs."""

from __future__ import annotations

import logging
from typing import Optional, Set

from .contracts import TriggerMessage
from .engine import WorkflowExecutor
from .errors import DefinitionNotFound, InvalidWorkflowDefinition, PersistenceError
from .triggers import TriggerQueue
from .utils import retry

logger = logging.getLogger(__name__)


class TriggerWorker:
    """Consume trigger messages and start a run for each one."""

    def __init__(self, queue: TriggerQueue, executor: WorkflowExecutor) -> None:
        self._queue = queue
        self._executor = executor
        self._active: Set[str] = set()
        self._failures = 0
        self.runs_started = 0

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Listen for triggers until ``lifespan`` seconds elapse (forever if None).

        A trigger whose run cannot be created because the store is
        unavailable is requeued and the worker backs off before reading
        again. Background runs still executing when the listener stops are
        awaited before returning.
        """
        async for delivery in self._queue.receive(lifespan=lifespan):
            try:
                await self.handle(delivery.message)
            except PersistenceError:
                logger.exception(
                    f"Could not start run for trigger {delivery.message.message_id}"
                )
                await self._queue.requeue(delivery)
                await retry.schedule_retry(self._failures)
                self._failures += 1
                continue
            self._failures = 0
            await self._queue.ack(delivery)

        for run_id in self._prune():
            await self._executor.wait(run_id)

    async def handle(self, message: TriggerMessage) -> Optional[str]:
        """Start the run requested by ``message``.

        Unknown or unrunnable workflows are logged and dropped; the message is
        still acknowledged since redelivery cannot succeed.

        Raises:
            PersistenceError: If the run record could not be created.
        """
        trigger = message.trigger
        try:
            run_id = await self._executor.start(trigger)
        except (DefinitionNotFound, InvalidWorkflowDefinition) as e:
            logger.error(f"Rejected trigger {message.message_id}: {e}")
            return None
        self.runs_started += 1
        self._prune()
        self._active.add(run_id)
        logger.info(
            f"Trigger {message.message_id} started run_id={run_id} "
            f"for workflow {trigger.workflow_id}"
        )
        return run_id

    def active_runs(self) -> list[str]:
        """Runs started by this worker that are still executing."""
        return sorted(self._prune())

    def _prune(self) -> Set[str]:
        self._active.intersection_update(self._executor.active_runs())
        return set(self._active)
