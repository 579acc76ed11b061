"""PostgreSQL implementation of the workflow repository."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

import asyncpg

from ..contracts import RunOutcome, RunStatus, WorkflowDefinition
from .models import StepLogEntry, WorkflowRun
from .repository import WorkflowRepository

_DEFINITION_COLUMNS = (
    "id, name, description, target_type, target_id, steps, status, version, "
    "auto_run, schedule_cron, created_at, updated_at, created_by, last_run_at, "
    "last_run_status, run_count, success_count, failure_count"
)

_RUN_COLUMNS = (
    "id, workflow_id, started_at, completed_at, status, current_step, total_steps, "
    "execution_log, context, error_message, error_step, triggered_by, triggered_by_user, "
    "cancel_requested"
)


class PostgresWorkflowRepository(WorkflowRepository):
    """Persist workflows and runs using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        try:
            await conn.set_type_codec(
                "jsonb", encoder=json.dumps, decoder=json.loads, schema="pg_catalog"
            )
            if not self._initialized:
                await self._ensure_schema(conn)
                self._initialized = True
        except Exception:
            await conn.close()
            raise
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                name VARCHAR(255) NOT NULL,
                description TEXT,
                target_type VARCHAR(50),
                target_id TEXT,
                steps JSONB NOT NULL,
                status VARCHAR(50) DEFAULT 'draft',
                version INTEGER DEFAULT 1,
                auto_run BOOLEAN DEFAULT FALSE,
                schedule_cron VARCHAR(100),
                created_at TIMESTAMPTZ DEFAULT NOW(),
                updated_at TIMESTAMPTZ DEFAULT NOW(),
                created_by VARCHAR(255),
                last_run_at TIMESTAMPTZ,
                last_run_status VARCHAR(50),
                run_count INTEGER DEFAULT 0,
                success_count INTEGER DEFAULT 0,
                failure_count INTEGER DEFAULT 0
            )
            """
        )
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL REFERENCES workflows(id) ON DELETE CASCADE,
                started_at TIMESTAMPTZ DEFAULT NOW(),
                completed_at TIMESTAMPTZ,
                status VARCHAR(50) DEFAULT 'running',
                current_step INTEGER DEFAULT 0,
                total_steps INTEGER NOT NULL,
                execution_log JSONB DEFAULT '[]'::jsonb,
                context JSONB DEFAULT '{}'::jsonb,
                error_message TEXT,
                error_step INTEGER,
                triggered_by VARCHAR(50),
                triggered_by_user VARCHAR(255),
                cancel_requested BOOLEAN NOT NULL DEFAULT FALSE
            )
            """
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_runs_workflow_id ON workflow_runs(workflow_id)"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_runs_started_at ON workflow_runs(started_at DESC)"
        )

    @staticmethod
    def _definition_from_row(row: asyncpg.Record) -> WorkflowDefinition:
        return WorkflowDefinition.model_validate(
            {k: v for k, v in dict(row).items() if v is not None}
        )

    @staticmethod
    def _run_from_row(row: asyncpg.Record) -> WorkflowRun:
        return WorkflowRun.model_validate(
            {k: v for k, v in dict(row).items() if v is not None}
        )

    # ------------------------------------------------------------------
    async def save_definition(self, definition: WorkflowDefinition) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"""
                INSERT INTO workflows ({_DEFINITION_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17, $18)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    description = EXCLUDED.description,
                    target_type = EXCLUDED.target_type,
                    target_id = EXCLUDED.target_id,
                    steps = EXCLUDED.steps,
                    status = EXCLUDED.status,
                    version = EXCLUDED.version,
                    auto_run = EXCLUDED.auto_run,
                    schedule_cron = EXCLUDED.schedule_cron,
                    updated_at = EXCLUDED.updated_at,
                    created_by = EXCLUDED.created_by
                """,
                definition.id,
                definition.name,
                definition.description,
                definition.target_type.value if definition.target_type else None,
                definition.target_id,
                [step.to_dict() for step in definition.steps],
                definition.status.value,
                definition.version,
                definition.auto_run,
                definition.schedule_cron,
                definition.created_at,
                definition.updated_at,
                definition.created_by,
                definition.last_run_at,
                definition.last_run_status.value if definition.last_run_status else None,
                definition.run_count,
                definition.success_count,
                definition.failure_count,
            )
        finally:
            await conn.close()

    async def get_definition(self, workflow_id: str) -> WorkflowDefinition | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_DEFINITION_COLUMNS} FROM workflows WHERE id = $1",
                workflow_id,
            )
        finally:
            await conn.close()
        return self._definition_from_row(row) if row else None

    async def list_definitions(self) -> list[WorkflowDefinition]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"SELECT {_DEFINITION_COLUMNS} FROM workflows ORDER BY updated_at DESC"
            )
        finally:
            await conn.close()
        return [self._definition_from_row(r) for r in rows]

    async def create_run(self, run: WorkflowRun) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                f"""
                INSERT INTO workflow_runs ({_RUN_COLUMNS})
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
                """,
                run.id,
                run.workflow_id,
                run.started_at,
                run.completed_at,
                run.status.value,
                run.current_step,
                run.total_steps,
                [entry.to_dict() for entry in run.execution_log],
                dict(run.context),
                run.error_message,
                run.error_step,
                run.triggered_by.value,
                run.triggered_by_user,
                run.cancel_requested,
            )
        finally:
            await conn.close()

    async def append_step_log(self, run_id: str, entry: StepLogEntry) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE workflow_runs
                SET execution_log = COALESCE(execution_log, '[]'::jsonb) || $1::jsonb
                WHERE id = $2
                """,
                [entry.to_dict()],
                run_id,
            )
        finally:
            await conn.close()

    async def persist_progress(
        self,
        run_id: str,
        current_step: int,
        context: dict[str, Any],
        entry: Optional[StepLogEntry] = None,
    ) -> None:
        conn = await self._connect()
        try:
            if entry is None:
                await conn.execute(
                    "UPDATE workflow_runs SET current_step = $1, context = $2 WHERE id = $3",
                    current_step,
                    context,
                    run_id,
                )
            else:
                await conn.execute(
                    """
                    UPDATE workflow_runs
                    SET execution_log = COALESCE(execution_log, '[]'::jsonb) || $1::jsonb,
                        current_step = $2,
                        context = $3
                    WHERE id = $4
                    """,
                    [entry.to_dict()],
                    current_step,
                    context,
                    run_id,
                )
        finally:
            await conn.close()

    async def finalize_run(
        self,
        run_id: str,
        status: RunStatus,
        completed_at: datetime,
        error_step: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE workflow_runs
                SET status = $1, completed_at = $2, error_step = $3, error_message = $4
                WHERE id = $5
                """,
                RunStatus(status).value,
                completed_at,
                error_step,
                error_message,
                run_id,
            )
        finally:
            await conn.close()

    async def update_workflow_aggregates(
        self, workflow_id: str, status: RunStatus, finished_at: datetime
    ) -> None:
        status = RunStatus(status)
        conn = await self._connect()
        try:
            await conn.execute(
                """
                UPDATE workflows
                SET run_count = run_count + 1,
                    success_count = success_count + $1,
                    failure_count = failure_count + $2,
                    last_run_at = $3,
                    last_run_status = $4
                WHERE id = $5
                """,
                int(status == RunStatus.COMPLETED),
                int(status == RunStatus.FAILED),
                finished_at,
                RunOutcome.from_status(status).value,
                workflow_id,
            )
        finally:
            await conn.close()

    async def request_cancel(self, run_id: str) -> bool:
        conn = await self._connect()
        try:
            status = await conn.execute(
                """
                UPDATE workflow_runs SET cancel_requested = TRUE
                WHERE id = $1 AND status = 'running'
                """,
                run_id,
            )
        finally:
            await conn.close()
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        return status.split()[-1] != "0"

    async def is_cancel_requested(self, run_id: str) -> bool:
        conn = await self._connect()
        try:
            requested = await conn.fetchval(
                "SELECT cancel_requested FROM workflow_runs WHERE id = $1", run_id
            )
        finally:
            await conn.close()
        return bool(requested)

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE id = $1", run_id
            )
        finally:
            await conn.close()
        return self._run_from_row(row) if row else None

    async def list_runs(self, workflow_id: str, limit: int = 50) -> list[WorkflowRun]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                f"""
                SELECT {_RUN_COLUMNS} FROM workflow_runs
                WHERE workflow_id = $1
                ORDER BY started_at DESC
                LIMIT $2
                """,
                workflow_id,
                limit,
            )
        finally:
            await conn.close()
        return [self._run_from_row(r) for r in rows]
