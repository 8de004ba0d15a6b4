"""AI-proposed field mappings.

One suggestion per target field, tagged by ``mapping_type``. Types this
version does not know parse to ``UnknownSuggestion`` instead of failing, so
one odd entry never sinks a whole generation request.
"""

import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter, ValidationError

from canvasmap.codes import IssueCode
from canvasmap.contracts import MappingIssue, record_issue

logger = logging.getLogger(__name__)

KNOWN_MAPPING_TYPES = (
    "direct",
    "static",
    "conditional",
    "table",
    "date_conversion",
    "concat",
    "split",
    "skip",
)


class SuggestionBase(BaseModel):
    target_field: str

    model_config = ConfigDict(extra="allow")


class DirectSuggestion(SuggestionBase):
    mapping_type: Literal["direct"] = "direct"
    source_field: str


class StaticSuggestion(SuggestionBase):
    mapping_type: Literal["static"] = "static"
    value: Any = ""


class ConditionClause(BaseModel):
    """Free-text condition as phrased by the oracle."""
    condition: str = ""
    value: Any = ""

    model_config = ConfigDict(extra="allow")


class ConditionalSuggestion(SuggestionBase):
    mapping_type: Literal["conditional"] = "conditional"
    conditions: List[ConditionClause] = Field(default_factory=list)
    source_field: Optional[str] = None


class TableSuggestion(SuggestionBase):
    mapping_type: Literal["table"] = "table"
    source_field: str
    table: Dict[str, Any] = Field(default_factory=dict)


class DateConversionSuggestion(SuggestionBase):
    mapping_type: Literal["date_conversion"] = "date_conversion"
    source_field: str
    format: str = ""


class ConcatSuggestion(SuggestionBase):
    mapping_type: Literal["concat"] = "concat"
    source_fields: List[str] = Field(default_factory=list)
    separator: Optional[str] = " "


class SplitSuggestion(SuggestionBase):
    mapping_type: Literal["split"] = "split"
    source_field: str
    delimiter: str = ","
    index: int = 0


class SkipSuggestion(SuggestionBase):
    mapping_type: Literal["skip"] = "skip"


class UnknownSuggestion(SuggestionBase):
    """A suggestion whose ``mapping_type`` is not recognized; contributes nothing."""
    target_field: str = ""
    mapping_type: Optional[str] = None


def suggestion_kind(value: Any) -> str:
    if isinstance(value, BaseModel):
        value = {"mapping_type": getattr(value, "mapping_type", None)}
    if isinstance(value, dict) and value.get("mapping_type") in KNOWN_MAPPING_TYPES:
        return value["mapping_type"]
    return "unknown"


MappingSuggestion = Annotated[
    Union[
        Annotated[DirectSuggestion, Tag("direct")],
        Annotated[StaticSuggestion, Tag("static")],
        Annotated[ConditionalSuggestion, Tag("conditional")],
        Annotated[TableSuggestion, Tag("table")],
        Annotated[DateConversionSuggestion, Tag("date_conversion")],
        Annotated[ConcatSuggestion, Tag("concat")],
        Annotated[SplitSuggestion, Tag("split")],
        Annotated[SkipSuggestion, Tag("skip")],
        Annotated[UnknownSuggestion, Tag("unknown")],
    ],
    Discriminator(suggestion_kind),
]

_suggestion_adapter: TypeAdapter = TypeAdapter(MappingSuggestion)


def parse_suggestion(raw: Any) -> SuggestionBase:
    return _suggestion_adapter.validate_python(raw)


def parse_suggestions(
    raw: List[Any],
    warnings: Optional[List[MappingIssue]] = None,
) -> List[SuggestionBase]:
    """Parse an oracle's mapping list, dropping entries that cannot be read.

    Non-object entries and entries missing their variant's required fields
    are skipped with an ``INVALID_SUGGESTION`` warning.
    """
    suggestions: List[SuggestionBase] = []
    for i, entry in enumerate(raw):
        if isinstance(entry, SuggestionBase):
            suggestions.append(entry)
            continue
        if not isinstance(entry, dict):
            record_issue(warnings, logger, IssueCode.INVALID_SUGGESTION,
                         f"Suggestion #{i} is not an object: {entry!r}", str(i))
            continue
        try:
            suggestions.append(parse_suggestion(entry))
        except ValidationError as e:
            record_issue(warnings, logger, IssueCode.INVALID_SUGGESTION,
                         f"Suggestion #{i} for '{entry.get('target_field')}' is malformed: "
                         f"{e.error_count()} validation error(s)", entry.get("target_field") or str(i))
    return suggestions
