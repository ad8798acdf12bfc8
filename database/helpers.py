"""
Database helper functions — dialect-aware upserts and timestamp handling.

"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Return ``value`` as an aware UTC datetime.

    SQLite hands back naive datetimes; every timestamp this service writes
    is UTC, so a naive value is interpreted as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def upsert_statement(
    session: AsyncSession,
    model: Any,
    values: Union[Dict[str, Any], List[Dict[str, Any]]],
    conflict_columns: Iterable[str],
    update_columns: Iterable[str],
):
    """
    Build ``INSERT .. ON CONFLICT (..) DO UPDATE`` for the session's dialect.

    ``update_columns`` are overwritten from the incoming row; columns not
    listed keep their stored value.
    """
    dialect = session.get_bind().dialect.name
    insert = sqlite_insert if dialect == "sqlite" else pg_insert

    stmt = insert(model).values(values)
    return stmt.on_conflict_do_update(
        index_elements=list(conflict_columns),
        set_={col: stmt.excluded[col] for col in update_columns},
    )
