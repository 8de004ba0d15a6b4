"""Persisted mapping records and version-string helpers."""

import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

FIRST_VERSION = "v1.01"
DEFAULT_CATEGORY = "General"
DEFAULT_TRANSFORM_TYPE = "JsonToJson"

_NUMBER_RE = re.compile(r"\d+")


class SavedMapping(BaseModel):
    """One stored version of a named mapping.

    Versions of the same mapping share ``mapping_group_id``; at most one of
    them is active.
    """
    id: str
    user_id: str
    name: str
    version: str
    category: Optional[str] = DEFAULT_CATEGORY
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    transform_type: str = DEFAULT_TRANSFORM_TYPE
    mapping_group_id: str
    ui_config: Dict[str, Any] = Field(default_factory=dict)
    execution_config: Optional[Dict[str, Any]] = None
    is_active: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SavedMapping":
        data = dict(row)
        if data.get("tags") is None:
            data["tags"] = []
        for key in ("id", "user_id", "mapping_group_id"):
            if data.get(key) is not None:
                data[key] = str(data[key])
        for key in ("created_at", "updated_at"):
            if data.get(key) is not None:
                data[key] = str(data[key])
        return cls.model_validate(data)


def version_sort_key(version: Optional[str]) -> Tuple[int, ...]:
    """Numeric components of a version string: ``v1.10`` -> ``(1, 10)``."""
    if not version:
        return ()
    return tuple(int(n) for n in _NUMBER_RE.findall(version))


def next_version(versions: Iterable[Optional[str]]) -> str:
    """The version after the highest of ``versions`` (``v1.01`` when there is none).

    The last component is incremented and keeps two-digit padding.
    """
    keys = [version_sort_key(v) for v in versions if version_sort_key(v)]
    if not keys:
        return FIRST_VERSION
    latest = list(max(keys))
    if len(latest) == 1:
        latest.append(0)
    latest[-1] += 1
    head = ".".join(str(n) for n in latest[:-1])
    return f"v{head}.{latest[-1]:02d}"
