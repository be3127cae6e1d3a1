"""Persistence layer for campgate approval workflows."""

from __future__ import annotations

from typing import Optional

from ..config import CampgateConfig, load_config
from .inmemory import InMemoryApprovalRepository
from .repository import ApprovalRepository
from .sqlite import SQLiteApprovalRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresApprovalRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresApprovalRepository = None  # type: ignore

_repository_instance: ApprovalRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[CampgateConfig] = None
) -> ApprovalRepository:
    """Factory function to obtain an approval repository.

    The backend follows the URL scheme of ``database_url``, which defaults to
    the configured one (see ``load_config`` for its environment overrides).
    ``sqlite://<path>`` and ``postgresql://...`` are supported; with no URL
    the approvals live in memory.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    database_url = database_url or (config or load_config()).database_url

    if not database_url:
        _repository_instance = InMemoryApprovalRepository()
        return _repository_instance

    if database_url.startswith("sqlite://"):
        path = database_url.replace("sqlite://", "", 1)
        _repository_instance = SQLiteApprovalRepository(path)
    elif database_url.startswith("postgres://") or database_url.startswith(
        "postgresql://"
    ):
        if PostgresApprovalRepository is None:
            raise RuntimeError("Postgres support not available")
        _repository_instance = PostgresApprovalRepository(database_url)
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repository_instance


__all__ = [
    "ApprovalRepository",
    "InMemoryApprovalRepository",
    "SQLiteApprovalRepository",
    "PostgresApprovalRepository",
    "get_repository",
]
