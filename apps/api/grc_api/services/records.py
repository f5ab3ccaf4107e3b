"""Single-row helpers shared by the resource endpoints.

Each helper issues exactly one PostgREST request. Missing rows surface as
``NotFoundError``; store failures propagate as ``StoreError``.
"""

from __future__ import annotations

from typing import Any

from grc_api.core.errors import NotFoundError
from grc_api.core.supabase_rest import Row, SupabaseRest


async def fetch_row(
    rest: SupabaseRest,
    table: str,
    row_id: str,
    *,
    org_id: str | None = None,
    columns: str = "*",
) -> Row | None:
    query = rest.table(table).select(columns).eq("id", row_id)
    if org_id is not None:
        query = query.eq("org_id", org_id)
    return await query.maybe_single()


async def fetch_row_or_404(
    rest: SupabaseRest,
    table: str,
    row_id: str,
    *,
    label: str,
    org_id: str | None = None,
    columns: str = "*",
) -> Row:
    row = await fetch_row(rest, table, row_id, org_id=org_id, columns=columns)
    if row is None:
        raise NotFoundError(f"{label} not found")
    return row


async def insert_row(rest: SupabaseRest, table: str, payload: dict[str, Any]) -> Row:
    return await rest.table(table).insert(payload).single()


async def update_row(
    rest: SupabaseRest,
    table: str,
    row_id: str,
    changes: dict[str, Any],
    *,
    label: str,
    org_id: str | None = None,
) -> Row:
    query = rest.table(table).update(changes).eq("id", row_id)
    if org_id is not None:
        query = query.eq("org_id", org_id)
    row = await query.maybe_single()
    if row is None:
        raise NotFoundError(f"{label} not found")
    return row


async def archive_row(rest: SupabaseRest, table: str, row_id: str, *, status: str, label: str) -> Row:
    """Soft delete: move the row to its terminal status."""
    return await update_row(rest, table, row_id, {"status": status}, label=label)


async def list_rows(
    rest: SupabaseRest,
    table: str,
    *,
    filters: dict[str, Any],
    order: str,
    desc: bool = False,
    columns: str = "*",
) -> list[Row]:
    """Select rows matching every non-empty filter, in one stable order."""
    query = rest.table(table).select(columns)
    for column, value in filters.items():
        if value is None or value == "":
            continue
        query = query.eq(column, value)
    result = await query.order(order, desc=desc).execute()
    return result.rows
