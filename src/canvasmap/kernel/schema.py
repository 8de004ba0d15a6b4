"""Schema field trees shared by source and target nodes."""

import logging
import re
from typing import Dict, Iterable, Iterator, List, Literal, Optional, Sequence, Set, Tuple

from pydantic import ConfigDict, model_validator

from canvasmap.codes import IssueCode
from canvasmap.contracts import MappingIssue, record_issue

from .models import CanvasModel

logger = logging.getLogger(__name__)

FieldType = Literal["string", "number", "boolean", "date", "object", "array"]
CONTAINER_TYPES = ("object", "array")

_INDEX_RE = re.compile(r"\[.*?\]")


class SchemaField(CanvasModel):
    """A field in a source or target schema.

    ``children`` is present iff the field is an object or array. ``group_by``
    only applies to arrays and should name one of the children; a stale value
    is tolerated here and dropped by ``reconstruct_fields`` and the exporter.
    """
    id: str
    name: str
    type: FieldType = "string"
    children: Optional[List["SchemaField"]] = None
    group_by: Optional[str] = None
    parent: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def validate_shape(self) -> "SchemaField":
        """Enforce the children/type invariant and keep groupBy on arrays."""
        if self.type in CONTAINER_TYPES:
            if self.children is None:
                self.children = []
        elif self.children:
            raise ValueError(
                f"Field '{self.name}' of type '{self.type}' cannot have children "
                f"(only object and array fields nest)"
            )
        else:
            self.children = None

        if self.group_by is not None and self.type != "array":
            raise ValueError(f"groupBy is only allowed on array fields, '{self.name}' is '{self.type}'")
        return self


class ArrayConfig(CanvasModel):
    """Group-by configuration for an array target field, keyed by field name."""
    target: str
    group_by: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


def _child_names(field: SchemaField) -> Set[str]:
    return {c.name for c in field.children or []}


def reconstruct_fields(
    fields: Sequence[SchemaField],
    array_configs: Optional[Iterable[ArrayConfig]] = None,
    warnings: Optional[List[MappingIssue]] = None,
) -> List[SchemaField]:
    """Restore ``group_by`` on array fields from an external array configuration.

    Pure tree transform. Array fields without a matching entry have their
    ``group_by`` cleared, which repairs stale values left by a renamed array.
    A stored ``group_by`` or an entry's ``group_by`` that is not a child name
    is dropped with an ``INVALID_GROUP_BY`` warning.
    """
    by_target: Dict[str, ArrayConfig] = {}
    for config in array_configs or []:
        if isinstance(config, dict):
            config = ArrayConfig.model_validate(config)
        by_target.setdefault(config.target, config)
    return [_reconstruct_field(f, by_target, warnings) for f in fields]


def _reconstruct_field(
    field: SchemaField,
    by_target: Dict[str, ArrayConfig],
    warnings: Optional[List[MappingIssue]],
) -> SchemaField:
    children = None
    if field.children is not None:
        children = [_reconstruct_field(c, by_target, warnings) for c in field.children]

    group_by = None
    if field.type == "array":
        child_names = _child_names(field)
        if field.group_by and field.group_by not in child_names:
            record_issue(warnings, logger, IssueCode.INVALID_GROUP_BY,
                         f"Clearing stale groupBy '{field.group_by}' on array '{field.name}': "
                         f"not one of its children", field.id)
        config = by_target.get(field.name)
        if config is not None and config.group_by:
            if config.group_by in child_names:
                group_by = config.group_by
            else:
                record_issue(warnings, logger, IssueCode.INVALID_GROUP_BY,
                             f"Ignoring groupBy '{config.group_by}' for array '{field.name}': "
                             f"not one of its children", field.id)

    return field.model_copy(update={"children": children, "group_by": group_by})


def iter_fields(fields: Sequence[SchemaField], prefix: str = "") -> Iterator[Tuple[str, SchemaField]]:
    """Yield ``(dotted_path, field)`` for every field in pre-order."""
    for field in fields:
        path = f"{prefix}.{field.name}" if prefix else field.name
        yield path, field
        if field.children:
            yield from iter_fields(field.children, path)


def field_path_index(fields: Sequence[SchemaField]) -> Dict[str, str]:
    """Map field id -> dotted name path for every field in the tree."""
    index: Dict[str, str] = {}
    for path, field in iter_fields(fields):
        index.setdefault(field.id, path)
    return index


def strip_indices(path: str) -> str:
    """Remove bracketed array indices: ``items[2].name`` -> ``items.name``."""
    return _INDEX_RE.sub("", path)


def collect_array_configs(
    fields: Sequence[SchemaField],
    warnings: Optional[List[MappingIssue]] = None,
) -> List[ArrayConfig]:
    """List every array field in the tree with its group-by setting.

    A ``group_by`` that no longer names a child is left out and reported.
    """
    configs = []
    for _, field in iter_fields(fields):
        if field.type != "array":
            continue
        group_by = field.group_by
        if group_by and group_by not in _child_names(field):
            record_issue(warnings, logger, IssueCode.INVALID_GROUP_BY,
                         f"Dropping stale groupBy '{group_by}' on array '{field.name}': "
                         f"not one of its children", field.id)
            group_by = None
        configs.append(ArrayConfig(target=field.name, group_by=group_by))
    return configs


def fields_from_paths(paths: Iterable[str], array_names: Iterable[str] = ()) -> List[SchemaField]:
    """Build a nested field tree from dotted paths.

    Each field's id is its full dotted path (indices stripped). A segment that
    carried an index (``items[0]``) or whose name is in ``array_names`` becomes
    an array; any other segment with descendants becomes an object.
    """
    arrays = set(array_names)
    # Ordered nested dict: name -> (is_indexed, children)
    tree: Dict[str, list] = {}
    for raw in paths:
        if not raw:
            continue
        level = tree
        for segment in raw.split("."):
            name = strip_indices(segment)
            if not name:
                continue
            entry = level.setdefault(name, [False, {}])
            if name != segment:
                entry[0] = True
            level = entry[1]
    return _build_fields(tree, "", arrays)


def _build_fields(level: Dict[str, list], prefix: str, arrays: set) -> List[SchemaField]:
    fields = []
    for name, (indexed, children) in level.items():
        path = f"{prefix}.{name}" if prefix else name
        if indexed or name in arrays:
            field_type = "array"
        elif children:
            field_type = "object"
        else:
            field_type = "string"
        fields.append(SchemaField(
            id=path,
            name=name,
            type=field_type,
            children=_build_fields(children, path, arrays) if field_type in CONTAINER_TYPES else None,
            parent=prefix or None,
        ))
    return fields
