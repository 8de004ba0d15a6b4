"""Versioned mapping store.

Mappings are grouped by ``mapping_group_id``; saving creates a new version
and deactivates its siblings, so each group has at most one active version.

There is no optimistic locking. Two concurrent ``save_mapping`` or
``activate_version`` calls on the same group can briefly leave zero or two
active versions; callers are expected to be the single writer of a group.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Dict, List, Optional, Sequence, Union

from canvasmap.errors import (
    AuthenticationRequiredError,
    MappingNotFoundError,
    NameConflictError,
    PersistenceError,
)
from canvasmap.kernel.exporter import export_execution_mapping, export_ui_configuration
from canvasmap.kernel.graph import CanvasGraph
from canvasmap.kernel.importer import import_configuration
from canvasmap.kernel.rules import ExecutionMappingConfig

from .backend import BackendError, MappingBackend, Order, eq, eq_or_null, neq
from .memory import InMemoryBackend
from .records import (
    DEFAULT_CATEGORY,
    DEFAULT_TRANSFORM_TYPE,
    FIRST_VERSION,
    SavedMapping,
    version_sort_key,
)
from .supabase_backend import SupabaseBackend

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "mappings"


class MappingStore:
    """Per-user access to stored mappings through a ``MappingBackend``."""

    def __init__(self, backend: MappingBackend, user_id: Optional[str], table: str = DEFAULT_TABLE):
        self.backend = backend
        self.user_id = user_id
        self.table = table

    @classmethod
    async def from_settings(cls, settings, user_id: Optional[str]) -> "MappingStore":
        """Store over Supabase when it is configured, otherwise over an in-memory backend."""
        if settings.has_supabase:
            backend: MappingBackend = await SupabaseBackend.from_settings(settings)
        else:
            logger.warning("Supabase is not configured; mappings are kept in memory only")
            backend = InMemoryBackend(settings.mappings_table)
        return cls(backend, user_id, table=settings.mappings_table)

    def _require_user(self, action: str) -> str:
        if not self.user_id:
            raise AuthenticationRequiredError(f"User authentication is required to {action}")
        return self.user_id

    async def _call(self, stage: str, call: Awaitable[Any]) -> Any:
        """Await a backend call, wrapping its failure with the stage name."""
        try:
            return await call
        except BackendError as e:
            logger.error("Failed to %s: %s", stage, e)
            raise PersistenceError(stage, str(e)) from e

    async def _name_taken(self, user_id: str, name: str, other_than_group: Optional[str] = None) -> bool:
        filters = [eq("user_id", user_id), eq("name", name)]
        if other_than_group is not None:
            filters.append(neq("mapping_group_id", other_than_group))
        rows = await self._call("check mapping name", self.backend.select(self.table, filters, limit=1))
        return bool(rows)

    async def _get_record(self, user_id: str, mapping_id: str) -> Dict[str, Any]:
        rows = await self._call(
            f"find mapping {mapping_id}",
            self.backend.select(self.table, [eq("id", mapping_id), eq("user_id", user_id)], limit=1),
        )
        if not rows:
            raise MappingNotFoundError(mapping_id)
        return rows[0]

    async def save_mapping(
        self,
        name: str,
        graph: Union[CanvasGraph, Dict[str, Any]],
        execution_config: Optional[Union[ExecutionMappingConfig, Dict[str, Any]]] = None,
        category: str = DEFAULT_CATEGORY,
        description: Optional[str] = None,
        tags: Optional[List[str]] = None,
        version: Optional[str] = None,
        transform_type: str = DEFAULT_TRANSFORM_TYPE,
    ) -> SavedMapping:
        """Save ``graph`` as the new active version of the mapping called ``name``.

        Group id, category, description, tags and transform type are inherited
        from the current active version unless given explicitly. A new name
        that is already used by another (inactive) group is rejected before
        anything is written.

        Raises:
            NameConflictError: if ``name`` belongs to a group with no active version.
            PersistenceError: if a backend call fails; the stage is in the message.
        """
        user_id = self._require_user("save mappings")
        name = name.strip()

        existing_rows = await self._call(
            "check existing mapping",
            self.backend.select(
                self.table,
                [eq("user_id", user_id), eq("name", name), eq("is_active", True)],
                limit=1,
            ),
        )
        existing = existing_rows[0] if existing_rows else None
        if existing is None and await self._name_taken(user_id, name):
            raise NameConflictError(name)

        final_category = category if category != DEFAULT_CATEGORY else ((existing or {}).get("category") or DEFAULT_CATEGORY)
        final_description = description or (existing or {}).get("description")
        final_tags = tags or (existing or {}).get("tags") or []
        final_transform_type = (
            transform_type if transform_type != DEFAULT_TRANSFORM_TYPE
            else ((existing or {}).get("transform_type") or DEFAULT_TRANSFORM_TYPE)
        )
        group_id = (existing or {}).get("mapping_group_id") or str(uuid.uuid4())

        if not version:
            version = await self._call(
                "get next version",
                self.backend.rpc("get_next_version", {
                    "p_user_id": user_id,
                    "p_name": name,
                    "p_category": final_category,
                }),
            )

        ui_config = export_ui_configuration(graph, name).model_copy(update={"version": version})
        if execution_config is None:
            execution = export_execution_mapping(graph, name, final_category).to_wire()
        elif isinstance(execution_config, ExecutionMappingConfig):
            execution = execution_config.to_wire()
        else:
            execution = dict(execution_config)
        execution["version"] = version

        if existing is not None:
            await self._call(
                "deactivate previous versions",
                self.backend.update(
                    self.table,
                    {"is_active": False},
                    [eq("user_id", user_id), eq("mapping_group_id", group_id)],
                ),
            )

        row = await self._call("save mapping", self.backend.insert(self.table, {
            "user_id": user_id,
            "name": name,
            "version": version,
            "category": final_category,
            "description": final_description,
            "tags": final_tags,
            "transform_type": final_transform_type,
            "mapping_group_id": group_id,
            "ui_config": ui_config.to_wire(),
            "execution_config": execution,
            "is_active": True,
        }))
        logger.info("Saved mapping '%s' %s (group %s)", name, version, group_id)
        return SavedMapping.from_row(row)

    async def activate_version(self, mapping_id: str, name: str, category: Optional[str]) -> None:
        """Make ``mapping_id`` the only active version of ``(name, category)``.

        An empty ``category`` matches records whose category is NULL.
        """
        user_id = self._require_user("update mappings")
        await self._call(
            "deactivate previous versions",
            self.backend.update(
                self.table,
                {"is_active": False},
                [eq("user_id", user_id), eq("name", name), eq_or_null("category", category)],
            ),
        )
        activated = await self._call(
            "activate mapping version",
            self.backend.update(self.table, {"is_active": True}, [eq("id", mapping_id), eq("user_id", user_id)]),
        )
        if not activated:
            logger.warning("Activation matched no record for id %s; '%s' has no active version", mapping_id, name)
        else:
            logger.info("Activated %s of '%s'", activated[0].get("version"), name)

    async def copy_mapping(self, mapping_id: str, new_name: str, transform_type: Optional[str] = None) -> SavedMapping:
        """Copy a version into a new group named ``new_name``, as its active ``v1.01``."""
        user_id = self._require_user("copy mappings")
        new_name = new_name.strip()
        if await self._name_taken(user_id, new_name):
            raise NameConflictError(new_name)

        original = await self._get_record(user_id, mapping_id)
        now = datetime.now(timezone.utc).isoformat()

        ui_config = dict(original.get("ui_config") or {})
        ui_config.update({
            "name": new_name,
            "version": FIRST_VERSION,
            "metadata": {**(ui_config.get("metadata") or {}), "createdAt": now, "createdBy": user_id},
        })
        execution = original.get("execution_config")
        if execution:
            execution = {**execution, "name": new_name, "version": FIRST_VERSION}

        row = await self._call("copy mapping", self.backend.insert(self.table, {
            "user_id": user_id,
            "name": new_name,
            "version": FIRST_VERSION,
            "category": original.get("category"),
            "description": original.get("description"),
            "tags": original.get("tags") or [],
            "transform_type": transform_type or original.get("transform_type") or DEFAULT_TRANSFORM_TYPE,
            "mapping_group_id": str(uuid.uuid4()),
            "ui_config": ui_config,
            "execution_config": execution,
            "is_active": True,
        }))
        logger.info("Copied mapping %s to '%s'", mapping_id, new_name)
        return SavedMapping.from_row(row)

    async def update_mapping(
        self,
        mapping_id: str,
        name: str,
        category: str,
        transform_type: Optional[str] = None,
    ) -> None:
        """Rename/recategorize every version in the group of ``mapping_id``."""
        user_id = self._require_user("update mappings")
        name = name.strip()
        category = category.strip()
        group_id = (await self._get_record(user_id, mapping_id)).get("mapping_group_id")

        if await self._name_taken(user_id, name, other_than_group=group_id):
            raise NameConflictError(name)

        versions = await self._call(
            "fetch mapping group",
            self.backend.select(self.table, [eq("mapping_group_id", group_id), eq("user_id", user_id)]),
        )
        for record in versions:
            values: Dict[str, Any] = {"name": name, "category": category}
            if transform_type:
                values["transform_type"] = transform_type.strip()
            if record.get("ui_config"):
                values["ui_config"] = {**record["ui_config"], "name": name}
            if record.get("execution_config"):
                values["execution_config"] = {**record["execution_config"], "name": name}
            await self._call(
                "update mapping",
                self.backend.update(self.table, values, [eq("id", record["id"]), eq("user_id", user_id)]),
            )
        logger.info("Updated %d versions of group %s to '%s'", len(versions), group_id, name)

    async def get_mappings(self) -> List[SavedMapping]:
        user_id = self._require_user("fetch mappings")
        rows = await self._call(
            "fetch mappings",
            self.backend.select(self.table, [eq("user_id", user_id)], order=[Order("updated_at", descending=True)]),
        )
        return [SavedMapping.from_row(r) for r in rows]

    async def get_mappings_by_category(self, category: Optional[str] = None) -> List[SavedMapping]:
        user_id = self._require_user("fetch mappings")
        filters = [eq("user_id", user_id)]
        if category:
            filters.append(eq("category", category))
        rows = await self._call(
            "fetch mappings",
            self.backend.select(self.table, filters, order=[Order("updated_at", descending=True)]),
        )
        return [SavedMapping.from_row(r) for r in rows]

    async def get_latest_mappings(self) -> List[SavedMapping]:
        """One record per group: the active version, else the highest version."""
        user_id = self._require_user("fetch mappings")
        rows = await self._call(
            "fetch mappings",
            self.backend.select(self.table, [eq("user_id", user_id)], order=[Order("name")]),
        )
        rows = _sorted_by_version(rows)
        rows.sort(key=lambda r: r.get("name") or "")

        latest: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            group_id = row.get("mapping_group_id")
            current = latest.get(group_id)
            if current is None or (row.get("is_active") and not current.get("is_active")):
                latest[group_id] = row
        return [SavedMapping.from_row(r) for r in latest.values()]

    async def get_mapping_versions(self, name: str, category: Optional[str]) -> List[SavedMapping]:
        """All versions of ``(name, category)``, newest first."""
        user_id = self._require_user("fetch mappings")
        rows = await self._call(
            "fetch mapping versions",
            self.backend.select(
                self.table,
                [eq("user_id", user_id), eq("name", name), eq_or_null("category", category)],
                order=[Order("version", descending=True)],
            ),
        )
        return [SavedMapping.from_row(r) for r in _sorted_by_version(rows)]

    async def get_active_mapping(self, name: str, category: Optional[str] = None) -> Optional[SavedMapping]:
        user_id = self._require_user("fetch mappings")
        data = await self._call(
            "fetch active mapping",
            self.backend.rpc("get_active_mapping", {"p_user_id": user_id, "p_name": name, "p_category": category}),
        )
        if isinstance(data, list):
            data = data[0] if data else None
        return SavedMapping.from_row(data) if data else None

    async def toggle_mapping_status(self, mapping_id: str, is_active: bool) -> None:
        user_id = self._require_user("update mappings")
        await self._call(
            "update mapping status",
            self.backend.update(self.table, {"is_active": is_active}, [eq("id", mapping_id), eq("user_id", user_id)]),
        )

    async def delete_mapping(self, mapping_id: str) -> None:
        user_id = self._require_user("delete mappings")
        await self._call(
            "delete mapping",
            self.backend.delete(self.table, [eq("id", mapping_id), eq("user_id", user_id)]),
        )
        logger.info("Deleted mapping %s", mapping_id)

    def load_graph(self, record: Union[SavedMapping, Dict[str, Any]]) -> CanvasGraph:
        return load_graph(record)


def _sorted_by_version(rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return sorted(rows, key=lambda r: version_sort_key(r.get("version")), reverse=True)


def load_graph(record: Union[SavedMapping, Dict[str, Any]]) -> CanvasGraph:
    """Rebuild the canvas of a stored version, restoring array groupBy."""
    if not isinstance(record, SavedMapping):
        record = SavedMapping.from_row(record)
    arrays = (record.execution_config or {}).get("arrays") or []
    return import_configuration(record.ui_config, arrays)
