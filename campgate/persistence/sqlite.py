"""SQLite implementation of the approval repository."""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

from ..errors import PersistenceError
from ..models import (
    ApprovalAction,
    ApprovalRequest,
    Notification,
    Profile,
    Workflow,
    WorkflowStep,
)
from .encoding import dump_json
from .repository import ApprovalRepository

logger = logging.getLogger(__name__)

R = TypeVar("R")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS workflows (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        resource_type TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        is_sequential INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS workflow_steps (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL REFERENCES workflows(id),
        step_order INTEGER NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        required_role TEXT NOT NULL,
        required_permission TEXT,
        allow_multiple_approvers INTEGER NOT NULL DEFAULT 0,
        required_approver_count INTEGER NOT NULL DEFAULT 1,
        can_reject INTEGER NOT NULL DEFAULT 1,
        UNIQUE (workflow_id, step_order)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS approval_requests (
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        resource_type TEXT NOT NULL,
        resource_id TEXT NOT NULL,
        current_step_id TEXT,
        status TEXT NOT NULL,
        submitted_by TEXT NOT NULL,
        submitted_at TEXT NOT NULL,
        completed_at TEXT,
        priority TEXT NOT NULL,
        metadata TEXT,
        rejection_reason TEXT,
        version INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS approval_actions (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        id TEXT NOT NULL UNIQUE,
        request_id TEXT NOT NULL,
        step_id TEXT,
        actor_id TEXT NOT NULL,
        action TEXT NOT NULL,
        comment TEXT,
        changes_requested TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS approval_notifications (
        id TEXT PRIMARY KEY,
        request_id TEXT NOT NULL,
        recipient_id TEXT NOT NULL,
        notification_type TEXT NOT NULL,
        is_read INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        role TEXT NOT NULL,
        first_name TEXT,
        last_name TEXT
    )
    """,
)

_REQUEST_COLUMNS = (
    "id, workflow_id, resource_type, resource_id, current_step_id, status, "
    "submitted_by, submitted_at, completed_at, priority, metadata, "
    "rejection_reason, version"
)
_STEP_COLUMNS = (
    "id, workflow_id, step_order, name, description, required_role, "
    "required_permission, allow_multiple_approvers, required_approver_count, can_reject"
)


def _loads(value: str | None) -> Any:
    return json.loads(value) if value else None


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _request_from_row(row: sqlite3.Row) -> ApprovalRequest:
    data = dict(row)
    data["metadata"] = _loads(data["metadata"]) or {}
    return ApprovalRequest(**data)


def _action_from_row(row: sqlite3.Row) -> ApprovalAction:
    data = dict(row)
    data.pop("seq", None)
    data["changes_requested"] = _loads(data["changes_requested"])
    return ApprovalAction(**data)


class SQLiteApprovalRepository(ApprovalRepository):
    """Persist approval state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        with self._lock, self._conn:
            for statement in _SCHEMA:
                self._conn.execute(statement)

    # ------------------------------------------------------------------
    # Helper methods
    def _run(self, fn: Callable[[sqlite3.Connection], R]) -> R:
        """Run ``fn`` inside a single transaction on the shared connection."""
        try:
            with self._lock, self._conn:
                return fn(self._conn)
        except sqlite3.Error as e:
            raise PersistenceError(f"SQLite operation failed: {e}") from e

    def _execute(self, query: str, *params: Any) -> int:
        return self._run(lambda conn: conn.execute(query, params).rowcount)

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        return self._run(lambda conn: conn.execute(query, params).fetchone())

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        return self._run(lambda conn: conn.execute(query, params).fetchall())

    # ------------------------------------------------------------------
    # Workflow definitions
    async def save_workflow(self, workflow: Workflow, steps: list[WorkflowStep]) -> None:
        def _save(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT OR REPLACE INTO workflows (id, name, description, resource_type, is_active, is_sequential) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    workflow.id,
                    workflow.name,
                    workflow.description,
                    workflow.resource_type,
                    int(workflow.is_active),
                    int(workflow.is_sequential),
                ),
            )
            conn.execute("DELETE FROM workflow_steps WHERE workflow_id = ?", (workflow.id,))
            conn.executemany(
                f"INSERT INTO workflow_steps ({_STEP_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        s.id,
                        workflow.id,
                        s.step_order,
                        s.name,
                        s.description,
                        s.required_role,
                        s.required_permission,
                        int(s.allow_multiple_approvers),
                        s.required_approver_count,
                        int(s.can_reject),
                    )
                    for s in steps
                ],
            )

        await asyncio.to_thread(self._run, _save)
        logger.debug(f"Saved workflow {workflow.id} with {len(steps)} steps")

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM workflows WHERE id = ?", workflow_id
        )
        return Workflow(**dict(row)) if row else None

    async def get_workflow_by_resource_type(self, resource_type: str) -> Workflow | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT * FROM workflows WHERE resource_type = ? AND is_active = 1 LIMIT 1",
            resource_type,
        )
        return Workflow(**dict(row)) if row else None

    async def list_workflows(self) -> list[Workflow]:
        rows = await asyncio.to_thread(self._fetchall, "SELECT * FROM workflows ORDER BY name")
        return [Workflow(**dict(r)) for r in rows]

    async def get_steps(self, workflow_id: str) -> list[WorkflowStep]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_STEP_COLUMNS} FROM workflow_steps WHERE workflow_id = ? ORDER BY step_order",
            workflow_id,
        )
        return [WorkflowStep(**dict(r)) for r in rows]

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_STEP_COLUMNS} FROM workflow_steps WHERE id = ?",
            step_id,
        )
        return WorkflowStep(**dict(row)) if row else None

    # ------------------------------------------------------------------
    # Requests and actions
    async def create_request(self, request: ApprovalRequest) -> None:
        await asyncio.to_thread(
            self._execute,
            f"INSERT INTO approval_requests ({_REQUEST_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            request.id,
            request.workflow_id,
            request.resource_type,
            request.resource_id,
            request.current_step_id,
            request.status,
            request.submitted_by,
            _iso(request.submitted_at),
            _iso(request.completed_at),
            request.priority,
            dump_json(request.metadata),
            request.rejection_reason,
            request.version,
        )
        logger.debug(f"Created approval request {request.id}")

    async def get_request(self, request_id: str) -> ApprovalRequest | None:
        row = await asyncio.to_thread(
            self._fetchone,
            f"SELECT {_REQUEST_COLUMNS} FROM approval_requests WHERE id = ?",
            request_id,
        )
        return _request_from_row(row) if row else None

    @staticmethod
    def _insert_action(conn: sqlite3.Connection, action: ApprovalAction) -> None:
        conn.execute(
            "INSERT INTO approval_actions (id, request_id, step_id, actor_id, action, comment, changes_requested, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                action.id,
                action.request_id,
                action.step_id,
                action.actor_id,
                action.action,
                action.comment,
                dump_json(action.changes_requested),
                _iso(action.created_at),
            ),
        )

    async def record_transition(
        self,
        request: ApprovalRequest,
        expected_version: int,
        action: ApprovalAction,
    ) -> bool:
        def _transition(conn: sqlite3.Connection) -> bool:
            cur = conn.execute(
                """
                UPDATE approval_requests
                SET current_step_id = ?, status = ?, completed_at = ?,
                    rejection_reason = ?, version = ?
                WHERE id = ? AND version = ?
                """,
                (
                    request.current_step_id,
                    request.status,
                    _iso(request.completed_at),
                    request.rejection_reason,
                    expected_version + 1,
                    request.id,
                    expected_version,
                ),
            )
            if cur.rowcount != 1:
                return False
            self._insert_action(conn, action)
            return True

        applied = await asyncio.to_thread(self._run, _transition)
        logger.debug(
            f"Transition on request {request.id} at version {expected_version}: "
            f"{'applied' if applied else 'version conflict'}"
        )
        return applied

    async def append_action(self, action: ApprovalAction) -> None:
        await asyncio.to_thread(self._run, lambda conn: self._insert_action(conn, action))

    async def list_actions(self, request_id: str) -> list[ApprovalAction]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT * FROM approval_actions WHERE request_id = ? ORDER BY seq",
            request_id,
        )
        return [_action_from_row(r) for r in rows]

    async def get_step_approvers(self, request_id: str, step_id: str) -> set[str]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT DISTINCT actor_id FROM approval_actions WHERE request_id = ? AND step_id = ? AND action = 'approved'",
            request_id,
            step_id,
        )
        return {r["actor_id"] for r in rows}

    async def list_pending_for_role(self, role: str) -> list[ApprovalRequest]:
        columns = ", ".join(f"r.{c.strip()}" for c in _REQUEST_COLUMNS.split(","))
        rows = await asyncio.to_thread(
            self._fetchall,
            f"""
            SELECT {columns}
            FROM approval_requests r
            JOIN workflow_steps s ON s.id = r.current_step_id
            WHERE r.status = 'pending' AND s.required_role = ?
            ORDER BY r.submitted_at, r.rowid
            """,
            role,
        )
        return [_request_from_row(r) for r in rows]

    async def list_submitted_by(self, user_id: str) -> list[ApprovalRequest]:
        rows = await asyncio.to_thread(
            self._fetchall,
            f"SELECT {_REQUEST_COLUMNS} FROM approval_requests WHERE submitted_by = ? ORDER BY submitted_at DESC, rowid DESC",
            user_id,
        )
        return [_request_from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Notifications
    async def add_notifications(self, notifications: list[Notification]) -> None:
        def _insert(conn: sqlite3.Connection) -> None:
            conn.executemany(
                "INSERT INTO approval_notifications (id, request_id, recipient_id, notification_type, is_read, created_at) VALUES (?, ?, ?, ?, ?, ?)",
                [
                    (
                        n.id,
                        n.request_id,
                        n.recipient_id,
                        n.notification_type,
                        int(n.is_read),
                        _iso(n.created_at),
                    )
                    for n in notifications
                ],
            )

        await asyncio.to_thread(self._run, _insert)

    async def list_notifications(
        self, recipient_id: str | None = None
    ) -> list[Notification]:
        if recipient_id is None:
            rows = await asyncio.to_thread(
                self._fetchall, "SELECT * FROM approval_notifications ORDER BY rowid"
            )
        else:
            rows = await asyncio.to_thread(
                self._fetchall,
                "SELECT * FROM approval_notifications WHERE recipient_id = ? ORDER BY rowid",
                recipient_id,
            )
        return [Notification(**dict(r)) for r in rows]

    # ------------------------------------------------------------------
    # Profiles
    async def save_profile(self, profile: Profile) -> None:
        await asyncio.to_thread(
            self._execute,
            "INSERT OR REPLACE INTO profiles (id, role, first_name, last_name) VALUES (?, ?, ?, ?)",
            profile.id,
            profile.role,
            profile.first_name,
            profile.last_name,
        )

    async def get_profile(self, actor_id: str) -> Profile | None:
        row = await asyncio.to_thread(
            self._fetchone, "SELECT * FROM profiles WHERE id = ?", actor_id
        )
        return Profile(**dict(row)) if row else None

    async def list_actor_ids_with_role(self, role: str) -> list[str]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT id FROM profiles WHERE role = ? ORDER BY id", role
        )
        return [r["id"] for r in rows]
