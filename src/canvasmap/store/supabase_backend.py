"""Backend over the supabase-py async client (PostgREST tables and RPCs)."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from supabase import AsyncClient, acreate_client

from .backend import BackendError, Filter, MappingBackend, Order

logger = logging.getLogger(__name__)


def _apply_filters(query, filters: Sequence[Filter]):
    for f in filters:
        if f.op == "eq":
            query = query.eq(f.column, f.value)
        elif f.op == "neq":
            query = query.neq(f.column, f.value)
        elif f.op == "is_null":
            query = query.is_(f.column, "null")
        else:
            raise ValueError(f"Unsupported filter operator: {f.op}")
    return query


class SupabaseBackend(MappingBackend):
    """Mapping persistence in a Supabase (Postgres) project.

    The table needs the ``SavedMapping`` columns; the ``get_next_version`` and
    ``get_active_mapping`` functions must exist in the database.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    @classmethod
    async def connect(cls, url: str, key: str) -> "SupabaseBackend":
        if not url or not key:
            raise BackendError("CANVASMAP_SUPABASE_URL and CANVASMAP_SUPABASE_KEY must be set to use the Supabase backend")
        return cls(await acreate_client(url, key))

    @classmethod
    async def from_settings(cls, settings) -> "SupabaseBackend":
        return await cls.connect(settings.supabase_url, settings.supabase_key)

    async def _execute(self, query, what: str):
        try:
            response = await query.execute()
        except Exception as e:
            logger.error("Supabase %s failed: %s", what, e)
            raise BackendError(str(e)) from e
        return response.data

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = _apply_filters(self.client.table(table).select("*"), filters)
        for o in order:
            query = query.order(o.column, desc=o.descending)
        if limit is not None:
            query = query.limit(limit)
        return await self._execute(query, f"select on {table}") or []

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        data = await self._execute(self.client.table(table).insert(row), f"insert into {table}")
        if not data:
            raise BackendError(f"Insert into {table} returned no row")
        return data[0]

    async def update(self, table: str, values: Dict[str, Any], filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        query = _apply_filters(self.client.table(table).update(values), filters)
        return await self._execute(query, f"update on {table}") or []

    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        query = _apply_filters(self.client.table(table).delete(), filters)
        return await self._execute(query, f"delete on {table}") or []

    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        return await self._execute(self.client.rpc(name, params), f"rpc {name}")
