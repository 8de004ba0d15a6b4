"""AI-assisted bootstrap of a canvas from sample records."""

from canvasmap.suggest.canvas import SuggestionCanvas, apply_template, convert_mappings_to_canvas
from canvasmap.suggest.oracle import MappingOracle, OracleResult, extract_json_array
from canvasmap.suggest.suggestions import MappingSuggestion, UnknownSuggestion, parse_suggestions

__all__ = [
    "MappingOracle",
    "OracleResult",
    "MappingSuggestion",
    "SuggestionCanvas",
    "UnknownSuggestion",
    "apply_template",
    "convert_mappings_to_canvas",
    "extract_json_array",
    "parse_suggestions",
]
