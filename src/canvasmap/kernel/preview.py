"""Apply execution rules to a few sample records.

Used to show the user what a mapping produces before it is saved. This is a
preview evaluator for a handful of records, not an execution engine.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from .rules import ExecutionMapping, ExecutionMappingConfig, TransformInfo

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_LIMIT = 10

_SEGMENT_RE = re.compile(r"([^\[\]]*)((?:\[\d+\])*)$")


def get_path(record: Any, path: str) -> Any:
    """Read a dotted path with optional indices (``items[0].name``); missing -> None."""
    current = record
    for segment in path.split("."):
        match = _SEGMENT_RE.match(segment)
        name, indices = match.group(1), match.group(2)
        if name:
            if not isinstance(current, dict) or name not in current:
                return None
            current = current[name]
        for index in re.findall(r"\d+", indices):
            if not isinstance(current, list) or int(index) >= len(current):
                return None
            current = current[int(index)]
    return current


def set_path(out: Dict[str, Any], path: str, value: Any) -> None:
    """Write ``value`` at a dotted path, creating nested dicts as needed."""
    parts = [p for p in re.sub(r"\[.*?\]", "", path).split(".") if p]
    current = out
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = {}
            current[part] = child
        current = child
    if parts:
        current[parts[-1]] = value


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def compare(left: Any, operator: str, right: Any) -> bool:
    """Evaluate a conditional rule's test.

    Ordering operators compare numerically when both sides parse as numbers,
    as strings otherwise.
    """
    if operator == "contains":
        return left is not None and str(right) in str(left)

    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        a, b = left_num, right_num
    else:
        a, b = ("" if left is None else str(left)), ("" if right is None else str(right))

    if operator in ("=", "=="):
        return a == b
    if operator == "!=":
        return a != b
    if operator == ">":
        return a > b
    if operator == "<":
        return a < b
    if operator == ">=":
        return a >= b
    if operator == "<=":
        return a <= b
    logger.warning("Unknown operator '%s' in conditional rule; treating as false", operator)
    return False


def apply_transform(value: Any, transform: Optional[TransformInfo]) -> Any:
    """Apply a map rule's pre-transform to the source value."""
    if transform is None or value is None:
        return value
    text = str(value)
    if transform.type == "substring":
        return text[transform.start or 0:transform.end]
    if transform.type == "split":
        parts = text.split(transform.delimiter if transform.delimiter is not None else ",")
        index = transform.index or 0
        return parts[index] if -len(parts) <= index < len(parts) else None
    logger.debug("Pre-transform '%s' is not evaluated in previews", transform.type)
    return value


def apply_rule(rule: ExecutionMapping, record: Dict[str, Any]) -> Tuple[bool, Any]:
    """Evaluate one rule against one record.

    Returns:
        ``(True, value)`` when the rule writes a value, ``(False, None)`` for skip.
    """
    if rule.type == "skip":
        return False, None
    if rule.type == "static":
        return True, rule.value
    source_value = get_path(record, rule.from_) if rule.from_ else None
    if rule.type == "direct":
        return True, source_value
    if rule.type == "ifThen":
        condition = rule.if_
        matched = condition is not None and compare(source_value, condition.operator, condition.value)
        return True, rule.then if matched else rule.else_
    if rule.type == "map":
        key = apply_transform(source_value, rule.transform)
        table = rule.map or {}
        if key is not None and str(key) in table:
            return True, table[str(key)]
        return True, key
    return False, None


def preview_record(config: ExecutionMappingConfig, record: Dict[str, Any]) -> Dict[str, Any]:
    """Map one record; later rules for the same target field win."""
    out: Dict[str, Any] = {}
    for rule in config.mappings:
        writes, value = apply_rule(rule, record)
        if writes:
            set_path(out, rule.to, value)
    return out


def preview_records(
    config: Union[ExecutionMappingConfig, Dict[str, Any]],
    records: Iterable[Dict[str, Any]],
    limit: int = DEFAULT_PREVIEW_LIMIT,
) -> List[Dict[str, Any]]:
    """Map up to ``limit`` sample records through the execution rules."""
    if not isinstance(config, ExecutionMappingConfig):
        config = ExecutionMappingConfig.model_validate(config)
    results = []
    for i, record in enumerate(records):
        if i >= limit:
            break
        results.append(preview_record(config, record))
    logger.debug("Previewed %d records through '%s'", len(results), config.name)
    return results
