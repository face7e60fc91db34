"""Dialect-aware INSERT ... ON CONFLICT construct.

PostgreSQL runs in production, SQLite in tests. Both dialects expose the
same on_conflict_do_nothing / on_conflict_do_update API, keyed here by
index_elements (SQLite has no named-constraint form).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def insert_for(db: AsyncSession, table: Any) -> Any:  # noqa: ANN401
    """Return an upsert-capable INSERT for the session's dialect."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert(table)
    return pg_insert(table)
