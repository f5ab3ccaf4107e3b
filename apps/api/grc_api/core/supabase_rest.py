from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import httpx

from grc_api.core.errors import StoreError
from grc_api.core.logging import get_logger
from grc_api.core.settings import Settings

logger = get_logger("store.supabase")

Row = dict[str, Any]

_RESERVED_VALUE_CHARS = frozenset(',.:()"\\ ')


def filter_text(value: Any) -> str:
    """Render a Python value the way PostgREST expects it inside a filter."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def quote_filter_value(value: str) -> str:
    if not any(char in _RESERVED_VALUE_CHARS for char in value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def ilike_condition(column: str, term: str) -> str:
    """Case-insensitive substring condition, usable inside an ``or`` group."""
    return f"{column}.ilike.{quote_filter_value(f'*{term}*')}"


def content_range_total(header_value: str | None) -> int | None:
    if not header_value or "/" not in header_value:
        return None
    total = header_value.rsplit("/", 1)[1].strip()
    if not total.isdigit():
        return None
    return int(total)


@dataclass(frozen=True)
class RestRequest:
    method: str
    path: str
    params: list[tuple[str, str]] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    json: Any = None


@dataclass(frozen=True)
class RestResult:
    data: Any
    count: int | None = None

    @property
    def rows(self) -> list[Row]:
        if isinstance(self.data, list):
            return [row for row in self.data if isinstance(row, dict)]
        if isinstance(self.data, dict):
            return [self.data]
        return []

    def first(self) -> Row | None:
        rows = self.rows
        return rows[0] if rows else None


class TableQuery:
    """Fluent PostgREST request builder for a single table.

    Mirrors the supabase-js query builder closely enough that each endpoint
    reads as one scoped statement: ``rest.table("assets").select().eq(...)``.
    """

    def __init__(self, client: SupabaseRest, table: str) -> None:
        self._client = client
        self._table = table
        self._method = "GET"
        self._columns = "*"
        self._filters: list[tuple[str, str]] = []
        self._order: list[str] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._count: str | None = None
        self._payload: Any = None
        self._on_conflict: str | None = None
        self._upsert = False

    # verbs

    def select(self, columns: str = "*", *, count: str | None = None, head: bool = False) -> TableQuery:
        self._columns = " ".join(columns.split())
        self._count = count
        if head:
            self._method = "HEAD"
        return self

    def insert(self, payload: Row | list[Row]) -> TableQuery:
        self._method = "POST"
        self._payload = payload
        return self

    def upsert(self, payload: Row | list[Row], *, on_conflict: str) -> TableQuery:
        self._method = "POST"
        self._payload = payload
        self._upsert = True
        self._on_conflict = on_conflict
        return self

    def update(self, payload: Row) -> TableQuery:
        self._method = "PATCH"
        self._payload = payload
        return self

    def delete(self) -> TableQuery:
        self._method = "DELETE"
        return self

    # filters

    def _filter(self, column: str, operator: str, value: str) -> TableQuery:
        self._filters.append((column, f"{operator}.{value}"))
        return self

    def eq(self, column: str, value: Any) -> TableQuery:
        return self._filter(column, "eq", filter_text(value))

    def neq(self, column: str, value: Any) -> TableQuery:
        return self._filter(column, "neq", filter_text(value))

    def gt(self, column: str, value: Any) -> TableQuery:
        return self._filter(column, "gt", filter_text(value))

    def is_(self, column: str, value: bool | None) -> TableQuery:
        return self._filter(column, "is", filter_text(value))

    def in_(self, column: str, values: list[Any]) -> TableQuery:
        rendered = ",".join(quote_filter_value(filter_text(value)) for value in values)
        return self._filter(column, "in", f"({rendered})")

    def or_(self, *conditions: str) -> TableQuery:
        self._filters.append(("or", f"({','.join(conditions)})"))
        return self

    # shaping

    def order(self, column: str, *, desc: bool = False) -> TableQuery:
        self._order.append(f"{column}.desc" if desc else f"{column}.asc")
        return self

    def limit(self, count: int) -> TableQuery:
        self._limit = count
        return self

    def range(self, start: int, end: int) -> TableQuery:
        self._offset = start
        self._limit = end - start + 1
        return self

    def build(self) -> RestRequest:
        params: list[tuple[str, str]] = []
        headers: dict[str, str] = {}
        prefer: list[str] = []

        if self._method in {"GET", "HEAD"}:
            params.append(("select", self._columns))
        else:
            prefer.append("return=representation")
            if self._upsert:
                prefer.append("resolution=merge-duplicates")
            if self._on_conflict:
                params.append(("on_conflict", self._on_conflict))

        params.extend(self._filters)
        if self._order:
            params.append(("order", ",".join(self._order)))
        if self._limit is not None:
            params.append(("limit", str(self._limit)))
        if self._offset is not None:
            params.append(("offset", str(self._offset)))
        if self._count:
            prefer.append(f"count={self._count}")
        if prefer:
            headers["Prefer"] = ",".join(prefer)

        return RestRequest(
            method=self._method,
            path=self._table,
            params=params,
            headers=headers,
            json=self._payload,
        )

    async def execute(self) -> RestResult:
        return await self._client.send(self.build())

    async def maybe_single(self) -> Row | None:
        if self._method == "GET" and self._limit is None:
            self._limit = 1
        result = await self.execute()
        return result.first()

    async def single(self) -> Row:
        """Execute a write expected to return exactly one row."""
        row = await self.maybe_single()
        if row is None:
            raise StoreError(f"No {self._table} row returned", code="PGRST116")
        return row


def _store_error_from_response(response: httpx.Response, path: str) -> StoreError:
    code: str | None = None
    message: str | None = None
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        raw_code = payload.get("code")
        code = str(raw_code) if raw_code is not None else None
        for key in ("message", "msg", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                message = value
                break

    return StoreError(message or f"Data store request to {path} failed ({response.status_code})", code=code)


class SupabaseRest:
    """PostgREST client bound to one set of credentials."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        rest_url: str,
        api_key: str,
        bearer: str,
        timeout: float,
    ) -> None:
        self._http = http_client
        self._rest_url = rest_url.rstrip("/")
        self._api_key = api_key
        self._bearer = bearer
        self._timeout = timeout

    @property
    def bearer(self) -> str:
        return self._bearer

    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    async def rpc(self, function: str, params: Row | None = None) -> Any:
        result = await self.send(RestRequest(method="POST", path=f"rpc/{function}", json=params or {}))
        return result.data

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._bearer}",
            "apikey": self._api_key,
            "Accept": "application/json",
        }

    async def send(self, request: RestRequest) -> RestResult:
        url = f"{self._rest_url}/{request.path}"
        headers = {**self._headers(), **request.headers}
        kwargs: dict[str, Any] = {"params": request.params, "headers": headers, "timeout": self._timeout}
        if request.json is not None:
            kwargs["json"] = request.json

        try:
            response = await self._http.request(request.method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error(
                "store.transport_error",
                extra={"component": "store", "path": request.path, "method": request.method, "error": str(exc)},
            )
            raise StoreError("Failed to reach the data store.") from exc

        if response.is_error:
            raise _store_error_from_response(response, request.path)

        data: Any = None
        if request.method != "HEAD" and response.content:
            try:
                data = response.json()
            except ValueError as exc:
                raise StoreError(f"Invalid response from the data store for {request.path}.") from exc

        return RestResult(data=data, count=content_range_total(response.headers.get("content-range")))


class SupabaseStore:
    """Process-wide store handle: settings plus one shared HTTP client.

    Built once in the application lifespan and handed to endpoints through a
    dependency. ``session`` acts with the caller's own token (or the anon key),
    ``privileged`` with the service-role key when one is configured.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient) -> None:
        self.settings = settings
        self.http_client = http_client

    @property
    def has_service_role(self) -> bool:
        return bool(self.settings.SUPABASE_SERVICE_ROLE_KEY)

    def session(self, access_token: str | None = None) -> SupabaseRest:
        return SupabaseRest(
            self.http_client,
            rest_url=self.settings.rest_url,
            api_key=self.settings.SUPABASE_ANON_KEY,
            bearer=access_token or self.settings.SUPABASE_ANON_KEY,
            timeout=self.settings.SUPABASE_TIMEOUT_SECONDS,
        )

    def privileged(self, access_token: str | None = None) -> SupabaseRest:
        service_role_key = self.settings.SUPABASE_SERVICE_ROLE_KEY
        if not service_role_key:
            return self.session(access_token)
        return SupabaseRest(
            self.http_client,
            rest_url=self.settings.rest_url,
            api_key=service_role_key,
            bearer=service_role_key,
            timeout=self.settings.SUPABASE_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        await self.http_client.aclose()
