"""Shared Supabase data access helpers."""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Callable, Iterable
from typing import Any

from postgrest import APIError
from supabase import Client

from splitflow.config import settings
from splitflow.utils.cache import TTLCache
from splitflow.utils.errors import InvalidInputError, NotFoundError

logger = logging.getLogger(__name__)
_user_cache = TTLCache(max(100, settings.data_cache_max_entries))


def _storage_error(exc: APIError) -> InvalidInputError:
    return InvalidInputError(str(getattr(exc, "message", None) or "Database request failed"))


def _with_filters(query, filters: dict[str, Any] | None):
    for key, value in (filters or {}).items():
        query = query.eq(key, value)
    return query


class SupabaseService:
    """Thin helper wrapper around a Supabase client.

    Every helper returns plain dict rows. PostgREST errors surface as
    ``InvalidInputError`` so routers never see storage exceptions.
    """

    def __init__(self, client: Client) -> None:
        self.client = client

    def _run(self, query):
        started = time.perf_counter()
        try:
            response = query.execute()
        except APIError as exc:
            raise _storage_error(exc) from exc
        elapsed_ms = (time.perf_counter() - started) * 1000
        threshold_ms = settings.slow_query_log_threshold_ms
        if threshold_ms > 0 and elapsed_ms >= threshold_ms:
            logger.warning("Slow Supabase query %.1fms", elapsed_ms)
        return response

    def execute(self, query, default: Any = None) -> Any:
        """Execute a Supabase query and return its data (``default`` when empty)."""
        data = self._run(query).data
        return default if data is None and default is not None else data

    def execute_with_count(self, query) -> tuple[list[dict[str, Any]], int]:
        """Execute a ``count="exact"`` query and return ``(rows, total)``."""
        response = self._run(query)
        rows = response.data or []
        return rows, int(response.count if response.count is not None else len(rows))

    def select_one(
        self,
        table: str,
        filters: dict[str, Any],
        columns: str = "*",
        not_found_label: str | None = None,
    ) -> dict[str, Any]:
        """Select a single row and raise NotFoundError when missing."""
        row = self.find_one(table, filters, columns=columns)
        if row is None:
            raise NotFoundError(not_found_label or table)
        return row

    def find_one(
        self, table: str, filters: dict[str, Any], columns: str = "*"
    ) -> dict[str, Any] | None:
        query = _with_filters(self.client.table(table).select(columns), filters)
        rows = self.execute(query.limit(1), default=[])
        return rows[0] if rows else None

    def select_many(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        columns: str = "*",
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Select many rows from a table with optional filters and paging."""
        query = _with_filters(self.client.table(table).select(columns), filters)
        if order_by:
            query = query.order(order_by, desc=descending)
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return self.execute(query, default=[])

    def select_in(
        self,
        table: str,
        column: str,
        values: Iterable[Any],
        filters: dict[str, Any] | None = None,
        columns: str = "*",
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[dict[str, Any]]:
        """Select rows whose ``column`` is one of ``values``; no values means no rows."""
        ids = sorted({str(value) for value in values if value})
        if not ids:
            return []
        query = _with_filters(self.client.table(table).select(columns).in_(column, ids), filters)
        if order_by:
            query = query.order(order_by, desc=descending)
        return self.execute(query, default=[])

    def insert_one(self, table: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return the created object."""
        rows = self.execute(self.client.table(table).insert(payload), default=[])
        if not rows:
            raise InvalidInputError(f"Failed to insert into {table}")
        return rows[0]

    def update(
        self,
        table: str,
        filters: dict[str, Any],
        payload: dict[str, Any],
    ) -> list[dict[str, Any]]:
        """Update rows matching every equality filter; returns the rows written."""
        query = _with_filters(self.client.table(table).update(payload), filters)
        return self.execute(query, default=[])

    def delete(self, table: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
        query = _with_filters(self.client.table(table).delete(), filters)
        return self.execute(query, default=[])

    def get_users_map(self, user_ids: Iterable[str]) -> dict[str, dict[str, Any]]:
        """Return ``{user_id: user_row}``, reading through the user cache."""
        result: dict[str, dict[str, Any]] = {}
        missing: list[str] = []
        for user_id in {str(uid) for uid in user_ids if uid}:
            cached = _user_cache.get(user_id)
            if cached is None:
                missing.append(user_id)
            else:
                result[user_id] = dict(cached)

        for row in self.select_in("users", "id", missing):
            user_id = str(row["id"])
            result[user_id] = dict(row)
            _user_cache.set(user_id, dict(row), settings.user_cache_ttl_seconds)
        return result


def group_by(rows: list[dict[str, Any]], key: str) -> dict[str, list[dict[str, Any]]]:
    """Group rows by an arbitrary key."""
    grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
    for row in rows:
        grouped[str(row[key])].append(row)
    return grouped


def sum_grouped(
    rows: Iterable[dict[str, Any]],
    key: Callable[[dict[str, Any]], Any],
    value: str = "amount",
) -> dict[Any, dict[str, float]]:
    """Group rows by ``key(row)`` and return ``{group: {"amount", "count"}}``."""
    totals: dict[Any, dict[str, float]] = defaultdict(lambda: {"amount": 0.0, "count": 0})
    for row in rows:
        bucket = totals[key(row)]
        bucket["amount"] += float(row.get(value) or 0)
        bucket["count"] += 1
    return dict(totals)


def paginate(page: int | None, limit: int | None, default: int, maximum: int) -> tuple[int, int]:
    """Clamp page/limit query values and return ``(page, limit)``."""
    safe_page = max(page or 1, 1)
    safe_limit = min(max(limit or default, 1), maximum)
    return safe_page, safe_limit
