"""SQLite implementation of the workflow repository."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

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


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflows and runs using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                target_type TEXT,
                target_id TEXT,
                steps TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'draft',
                version INTEGER NOT NULL DEFAULT 1,
                auto_run INTEGER NOT NULL DEFAULT 0,
                schedule_cron TEXT,
                created_at TEXT,
                updated_at TEXT,
                created_by TEXT,
                last_run_at TEXT,
                last_run_status TEXT,
                run_count INTEGER NOT NULL DEFAULT 0,
                success_count INTEGER NOT NULL DEFAULT 0,
                failure_count INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL REFERENCES workflows(id) ON DELETE CASCADE,
                started_at TEXT NOT NULL,
                completed_at TEXT,
                status TEXT NOT NULL DEFAULT 'running',
                current_step INTEGER NOT NULL DEFAULT 0,
                total_steps INTEGER NOT NULL,
                execution_log TEXT NOT NULL DEFAULT '[]',
                context TEXT NOT NULL DEFAULT '{}',
                error_message TEXT,
                error_step INTEGER,
                triggered_by TEXT,
                triggered_by_user TEXT,
                cancel_requested INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_workflow_runs_workflow_id ON workflow_runs(workflow_id)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> int:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            self._conn.commit()
            return cur.rowcount

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _definition_from_row(row: sqlite3.Row) -> WorkflowDefinition:
        data = dict(row)
        data["steps"] = json.loads(data["steps"])
        data["auto_run"] = bool(data["auto_run"])
        return WorkflowDefinition.model_validate(
            {k: v for k, v in data.items() if v is not None}
        )

    @staticmethod
    def _run_from_row(row: sqlite3.Row) -> WorkflowRun:
        data = dict(row)
        data["execution_log"] = json.loads(data["execution_log"] or "[]")
        data["context"] = json.loads(data["context"] or "{}")
        data["cancel_requested"] = bool(data["cancel_requested"])
        return WorkflowRun.model_validate(
            {k: v for k, v in data.items() if v is not None}
        )

    # ------------------------------------------------------------------
    # Repository API
    async def save_definition(self, definition: WorkflowDefinition) -> None:
        data = definition.model_dump(mode="json")
        await asyncio.to_thread(
            self._execute,
            f"""
            INSERT INTO workflows ({_DEFINITION_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                description = excluded.description,
                target_type = excluded.target_type,
                target_id = excluded.target_id,
                steps = excluded.steps,
                status = excluded.status,
                version = excluded.version,
                auto_run = excluded.auto_run,
                schedule_cron = excluded.schedule_cron,
                updated_at = excluded.updated_at,
                created_by = excluded.created_by
            """,
            data["id"],
            data["name"],
            data["description"],
            data["target_type"],
            data["target_id"],
            json.dumps([step.to_dict() for step in definition.steps]),
            data["status"],
            data["version"],
            int(data["auto_run"]),
            data["schedule_cron"],
            data["created_at"],
            data["updated_at"],
            data["created_by"],
            data["last_run_at"],
            data["last_run_status"],
            data["run_count"],
            data["success_count"],
            data["failure_count"],
        )

    async def get_definition(self, workflow_id: str) -> WorkflowDefinition | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_DEFINITION_COLUMNS} FROM workflows WHERE id = ?",
            workflow_id,
        )
        return self._definition_from_row(row) if row else None

    async def list_definitions(self) -> list[WorkflowDefinition]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_DEFINITION_COLUMNS} FROM workflows ORDER BY updated_at DESC",
        )
        return [self._definition_from_row(r) for r in rows]

    async def create_run(self, run: WorkflowRun) -> None:
        data = run.model_dump(mode="json")
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO workflow_runs ({_RUN_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            data["id"],
            data["workflow_id"],
            data["started_at"],
            data["completed_at"],
            data["status"],
            data["current_step"],
            data["total_steps"],
            json.dumps([entry.to_dict() for entry in run.execution_log]),
            json.dumps(data["context"]),
            data["error_message"],
            data["error_step"],
            data["triggered_by"],
            data["triggered_by_user"],
            int(run.cancel_requested),
        )

    async def append_step_log(self, run_id: str, entry: StepLogEntry) -> None:
        await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_runs SET execution_log = json_insert(execution_log, '$[#]', json(?)) WHERE id = ?",
            entry.to_json(),
            run_id,
        )

    async def persist_progress(
        self,
        run_id: str,
        current_step: int,
        context: dict[str, Any],
        entry: Optional[StepLogEntry] = None,
    ) -> None:
        if entry is None:
            await asyncio.to_thread(
                self._execute,
                "UPDATE workflow_runs SET current_step = ?, context = ? WHERE id = ?",
                current_step,
                json.dumps(context),
                run_id,
            )
            return
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_runs
            SET execution_log = json_insert(execution_log, '$[#]', json(?)),
                current_step = ?,
                context = ?
            WHERE id = ?
            """,
            entry.to_json(),
            current_step,
            json.dumps(context),
            run_id,
        )

    async def finalize_run(
        self,
        run_id: str,
        status: RunStatus,
        completed_at: datetime,
        error_step: Optional[int] = None,
        error_message: Optional[str] = None,
    ) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflow_runs
            SET status = ?, completed_at = ?, error_step = ?, error_message = ?
            WHERE id = ?
            """,
            RunStatus(status).value,
            completed_at.isoformat(),
            error_step,
            error_message,
            run_id,
        )

    async def update_workflow_aggregates(
        self, workflow_id: str, status: RunStatus, finished_at: datetime
    ) -> None:
        status = RunStatus(status)
        await asyncio.to_thread(
            self._execute,
            """
            UPDATE workflows
            SET run_count = run_count + 1,
                success_count = success_count + ?,
                failure_count = failure_count + ?,
                last_run_at = ?,
                last_run_status = ?
            WHERE id = ?
            """,
            int(status == RunStatus.COMPLETED),
            int(status == RunStatus.FAILED),
            finished_at.isoformat(),
            RunOutcome.from_status(status).value,
            workflow_id,
        )

    async def request_cancel(self, run_id: str) -> bool:
        updated = await asyncio.to_thread(
            self._execute,
            "UPDATE workflow_runs SET cancel_requested = 1 WHERE id = ? AND status = 'running'",
            run_id,
        )
        return updated > 0

    async def is_cancel_requested(self, run_id: str) -> bool:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT cancel_requested FROM workflow_runs WHERE id = ?",
            run_id,
        )
        return bool(row and row["cancel_requested"])

    async def get_run(self, run_id: str) -> WorkflowRun | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE id = ?",
            run_id,
        )
        return self._run_from_row(row) if row else None

    async def list_runs(self, workflow_id: str, limit: int = 50) -> list[WorkflowRun]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_RUN_COLUMNS} FROM workflow_runs WHERE workflow_id = ? ORDER BY started_at DESC LIMIT ?",
            workflow_id,
            limit,
        )
        return [self._run_from_row(r) for r in rows]
