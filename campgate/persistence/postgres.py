"""PostgreSQL implementation of the approval repository."""

from __future__ import annotations

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import asyncpg

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

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS workflows (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        resource_type TEXT NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        is_sequential BOOLEAN NOT NULL DEFAULT TRUE
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
        allow_multiple_approvers BOOLEAN NOT NULL DEFAULT FALSE,
        required_approver_count INTEGER NOT NULL DEFAULT 1,
        can_reject BOOLEAN NOT NULL DEFAULT TRUE,
        UNIQUE (workflow_id, step_order)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS approval_requests (
        seq BIGSERIAL,
        id TEXT PRIMARY KEY,
        workflow_id TEXT NOT NULL,
        resource_type TEXT NOT NULL,
        resource_id TEXT NOT NULL,
        current_step_id TEXT,
        status TEXT NOT NULL,
        submitted_by TEXT NOT NULL,
        submitted_at TIMESTAMPTZ NOT NULL,
        completed_at TIMESTAMPTZ,
        priority TEXT NOT NULL,
        metadata JSONB,
        rejection_reason TEXT,
        version INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS approval_actions (
        seq BIGSERIAL PRIMARY KEY,
        id TEXT NOT NULL UNIQUE,
        request_id TEXT NOT NULL,
        step_id TEXT,
        actor_id TEXT NOT NULL,
        action TEXT NOT NULL,
        comment TEXT,
        changes_requested JSONB,
        created_at TIMESTAMPTZ NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS approval_notifications (
        seq BIGSERIAL,
        id TEXT PRIMARY KEY,
        request_id TEXT NOT NULL,
        recipient_id TEXT NOT NULL,
        notification_type TEXT NOT NULL,
        is_read BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL
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
_ACTION_COLUMNS = (
    "id, request_id, step_id, actor_id, action, comment, changes_requested, created_at"
)
_NOTIFICATION_COLUMNS = (
    "id, request_id, recipient_id, notification_type, is_read, created_at"
)


def _json_value(value: Any) -> Any:
    # asyncpg hands JSONB back as text unless a codec is registered
    return json.loads(value) if isinstance(value, str) else value


def _request_from_record(record: asyncpg.Record) -> ApprovalRequest:
    data = dict(record)
    data["metadata"] = _json_value(data["metadata"]) or {}
    return ApprovalRequest(**data)


def _action_from_record(record: asyncpg.Record) -> ApprovalAction:
    data = dict(record)
    data["changes_requested"] = _json_value(data["changes_requested"])
    return ApprovalAction(**data)


class PostgresApprovalRepository(ApprovalRepository):
    """Persist approval state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        for statement in _SCHEMA:
            await conn.execute(statement)

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        try:
            conn = await self._connect()
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceError(f"Could not connect to PostgreSQL: {e}") from e
        try:
            yield conn
        except asyncpg.PostgresError as e:
            raise PersistenceError(f"PostgreSQL operation failed: {e}") from e
        finally:
            await conn.close()

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow, steps: list[WorkflowStep]) -> None:
        async with self._connection() as conn:
            async with conn.transaction():
                await conn.execute(
                    """
                    INSERT INTO workflows (id, name, description, resource_type, is_active, is_sequential)
                    VALUES ($1, $2, $3, $4, $5, $6)
                    ON CONFLICT (id) DO UPDATE SET
                        name = EXCLUDED.name,
                        description = EXCLUDED.description,
                        resource_type = EXCLUDED.resource_type,
                        is_active = EXCLUDED.is_active,
                        is_sequential = EXCLUDED.is_sequential
                    """,
                    workflow.id,
                    workflow.name,
                    workflow.description,
                    workflow.resource_type,
                    workflow.is_active,
                    workflow.is_sequential,
                )
                await conn.execute(
                    "DELETE FROM workflow_steps WHERE workflow_id = $1", workflow.id
                )
                await conn.executemany(
                    f"INSERT INTO workflow_steps ({_STEP_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)",
                    [
                        (
                            s.id,
                            workflow.id,
                            s.step_order,
                            s.name,
                            s.description,
                            s.required_role,
                            s.required_permission,
                            s.allow_multiple_approvers,
                            s.required_approver_count,
                            s.can_reject,
                        )
                        for s in steps
                    ],
                )
        logger.debug(f"Saved workflow {workflow.id} with {len(steps)} steps")

    async def get_workflow(self, workflow_id: str) -> Workflow | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM workflows WHERE id = $1", workflow_id)
        return Workflow(**dict(row)) if row else None

    async def get_workflow_by_resource_type(self, resource_type: str) -> Workflow | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM workflows WHERE resource_type = $1 AND is_active LIMIT 1",
                resource_type,
            )
        return Workflow(**dict(row)) if row else None

    async def list_workflows(self) -> list[Workflow]:
        async with self._connection() as conn:
            rows = await conn.fetch("SELECT * FROM workflows ORDER BY name")
        return [Workflow(**dict(r)) for r in rows]

    async def get_steps(self, workflow_id: str) -> list[WorkflowStep]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT {_STEP_COLUMNS} FROM workflow_steps WHERE workflow_id = $1 ORDER BY step_order",
                workflow_id,
            )
        return [WorkflowStep(**dict(r)) for r in rows]

    async def get_step(self, step_id: str) -> WorkflowStep | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_STEP_COLUMNS} FROM workflow_steps WHERE id = $1", step_id
            )
        return WorkflowStep(**dict(row)) if row else None

    # ------------------------------------------------------------------
    async def create_request(self, request: ApprovalRequest) -> None:
        async with self._connection() as conn:
            await conn.execute(
                f"INSERT INTO approval_requests ({_REQUEST_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13)",
                request.id,
                request.workflow_id,
                request.resource_type,
                request.resource_id,
                request.current_step_id,
                request.status,
                request.submitted_by,
                request.submitted_at,
                request.completed_at,
                request.priority,
                dump_json(request.metadata),
                request.rejection_reason,
                request.version,
            )
        logger.debug(f"Created approval request {request.id}")

    async def get_request(self, request_id: str) -> ApprovalRequest | None:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_REQUEST_COLUMNS} FROM approval_requests WHERE id = $1",
                request_id,
            )
        return _request_from_record(row) if row else None

    @staticmethod
    async def _insert_action(conn: asyncpg.Connection, action: ApprovalAction) -> None:
        await conn.execute(
            f"INSERT INTO approval_actions ({_ACTION_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)",
            action.id,
            action.request_id,
            action.step_id,
            action.actor_id,
            action.action,
            action.comment,
            dump_json(action.changes_requested),
            action.created_at,
        )

    async def record_transition(
        self,
        request: ApprovalRequest,
        expected_version: int,
        action: ApprovalAction,
    ) -> bool:
        async with self._connection() as conn:
            async with conn.transaction():
                status = await conn.execute(
                    """
                    UPDATE approval_requests
                    SET current_step_id = $1, status = $2, completed_at = $3,
                        rejection_reason = $4, version = $5
                    WHERE id = $6 AND version = $7
                    """,
                    request.current_step_id,
                    request.status,
                    request.completed_at,
                    request.rejection_reason,
                    expected_version + 1,
                    request.id,
                    expected_version,
                )
                applied = status.split()[-1] == "1"
                if applied:
                    await self._insert_action(conn, action)
        logger.debug(
            f"Transition on request {request.id} at version {expected_version}: "
            f"{'applied' if applied else 'version conflict'}"
        )
        return applied

    async def append_action(self, action: ApprovalAction) -> None:
        async with self._connection() as conn:
            await self._insert_action(conn, action)

    async def list_actions(self, request_id: str) -> list[ApprovalAction]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT {_ACTION_COLUMNS} FROM approval_actions WHERE request_id = $1 ORDER BY seq",
                request_id,
            )
        return [_action_from_record(r) for r in rows]

    async def get_step_approvers(self, request_id: str, step_id: str) -> set[str]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT DISTINCT actor_id FROM approval_actions WHERE request_id = $1 AND step_id = $2 AND action = 'approved'",
                request_id,
                step_id,
            )
        return {r["actor_id"] for r in rows}

    async def list_pending_for_role(self, role: str) -> list[ApprovalRequest]:
        columns = ", ".join(f"r.{c.strip()}" for c in _REQUEST_COLUMNS.split(","))
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {columns}
                FROM approval_requests r
                JOIN workflow_steps s ON s.id = r.current_step_id
                WHERE r.status = 'pending' AND s.required_role = $1
                ORDER BY r.submitted_at, r.seq
                """,
                role,
            )
        return [_request_from_record(r) for r in rows]

    async def list_submitted_by(self, user_id: str) -> list[ApprovalRequest]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                f"SELECT {_REQUEST_COLUMNS} FROM approval_requests WHERE submitted_by = $1 ORDER BY submitted_at DESC, seq DESC",
                user_id,
            )
        return [_request_from_record(r) for r in rows]

    # ------------------------------------------------------------------
    async def add_notifications(self, notifications: list[Notification]) -> None:
        async with self._connection() as conn:
            await conn.executemany(
                f"INSERT INTO approval_notifications ({_NOTIFICATION_COLUMNS}) VALUES ($1, $2, $3, $4, $5, $6)",
                [
                    (
                        n.id,
                        n.request_id,
                        n.recipient_id,
                        n.notification_type,
                        n.is_read,
                        n.created_at,
                    )
                    for n in notifications
                ],
            )

    async def list_notifications(
        self, recipient_id: str | None = None
    ) -> list[Notification]:
        async with self._connection() as conn:
            if recipient_id is None:
                rows = await conn.fetch(
                    f"SELECT {_NOTIFICATION_COLUMNS} FROM approval_notifications ORDER BY seq"
                )
            else:
                rows = await conn.fetch(
                    f"SELECT {_NOTIFICATION_COLUMNS} FROM approval_notifications WHERE recipient_id = $1 ORDER BY seq",
                    recipient_id,
                )
        return [Notification(**dict(r)) for r in rows]

    # ------------------------------------------------------------------
    async def save_profile(self, profile: Profile) -> None:
        async with self._connection() as conn:
            await conn.execute(
                """
                INSERT INTO profiles (id, role, first_name, last_name)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT (id) DO UPDATE SET
                    role = EXCLUDED.role,
                    first_name = EXCLUDED.first_name,
                    last_name = EXCLUDED.last_name
                """,
                profile.id,
                profile.role,
                profile.first_name,
                profile.last_name,
            )

    async def get_profile(self, actor_id: str) -> Profile | None:
        async with self._connection() as conn:
            row = await conn.fetchrow("SELECT * FROM profiles WHERE id = $1", actor_id)
        return Profile(**dict(row)) if row else None

    async def list_actor_ids_with_role(self, role: str) -> list[str]:
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT id FROM profiles WHERE role = $1 ORDER BY id", role
            )
        return [r["id"] for r in rows]
