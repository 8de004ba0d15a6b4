"""In-process backend: a dict of tables, plus the two version RPCs."""

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .backend import BackendError, Filter, MappingBackend, Order, eq, eq_or_null
from .records import next_version, version_sort_key

DEFAULT_TABLE = "mappings"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sort_value(value: Any) -> Tuple[int, Any]:
    # NULLs sort last, like Postgres ascending order
    if value is None:
        return (1, "")
    return (0, value)


class InMemoryBackend(MappingBackend):
    """Backend for tests and local runs.

    ``calls`` records every ``(operation, table_or_rpc)`` in order, so tests
    can assert that a rejected operation never wrote anything.
    """

    def __init__(self, table: str = DEFAULT_TABLE):
        self.table = table
        self.tables: Dict[str, List[Dict[str, Any]]] = {table: []}
        self.calls: List[Tuple[str, str]] = []

    def _rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(table, [])

    @staticmethod
    def _match(row: Dict[str, Any], filters: Sequence[Filter]) -> bool:
        return all(f.matches(row) for f in filters)

    def writes(self) -> List[Tuple[str, str]]:
        return [c for c in self.calls if c[0] in ("insert", "update", "delete")]

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        order: Sequence[Order] = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        self.calls.append(("select", table))
        rows = [r for r in self._rows(table) if self._match(r, filters)]
        # Stable sorts applied last-key-first give a multi-column order
        for o in reversed(order):
            rows.sort(key=lambda r: _sort_value(r.get(o.column)), reverse=o.descending)
        if limit is not None:
            rows = rows[:limit]
        return copy.deepcopy(rows)

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(("insert", table))
        stored = copy.deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        stored.setdefault("created_at", _now())
        stored["updated_at"] = _now()
        if any(r["id"] == stored["id"] for r in self._rows(table)):
            raise BackendError(f'duplicate key value violates unique constraint "{table}_pkey"')
        self._rows(table).append(stored)
        return copy.deepcopy(stored)

    async def update(self, table: str, values: Dict[str, Any], filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        self.calls.append(("update", table))
        updated = []
        for row in self._rows(table):
            if self._match(row, filters):
                row.update(copy.deepcopy(values))
                row["updated_at"] = _now()
                updated.append(copy.deepcopy(row))
        return updated

    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        self.calls.append(("delete", table))
        rows = self._rows(table)
        removed = [r for r in rows if self._match(r, filters)]
        self.tables[table] = [r for r in rows if not self._match(r, filters)]
        return removed

    async def rpc(self, name: str, params: Dict[str, Any]) -> Any:
        self.calls.append(("rpc", name))
        filters = [
            eq("user_id", params.get("p_user_id")),
            eq("name", params.get("p_name")),
        ]
        if name == "get_next_version":
            filters.append(eq_or_null("category", params.get("p_category")))
            rows = [r for r in self._rows(self.table) if self._match(r, filters)]
            return next_version(r.get("version") for r in rows)
        if name == "get_active_mapping":
            filters.append(eq("is_active", True))
            if params.get("p_category"):
                filters.append(eq("category", params["p_category"]))
            rows = [r for r in self._rows(self.table) if self._match(r, filters)]
            if not rows:
                return None
            rows.sort(key=lambda r: version_sort_key(r.get("version")), reverse=True)
            return copy.deepcopy(rows[0])
        raise BackendError(f"Could not find the function public.{name} in the schema cache")
