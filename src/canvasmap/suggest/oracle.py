"""AI mapping oracle: asks an OpenAI chat model for field mapping suggestions.

One request per generation, no retry and no timeout of our own. A response
that does not contain a JSON array fails the whole request.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from canvasmap.contracts import MappingIssue
from canvasmap.errors import OracleResponseError
from canvasmap.kernel.graph import CanvasGraph

from .canvas import apply_template, convert_mappings_to_canvas
from .suggestions import SuggestionBase, parse_suggestions

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4.1-2025-04-14"
DEFAULT_TEMPERATURE = 0.2
MAX_SAMPLES = 20
EUR_PER_1K_TOKENS = 0.01

SYSTEM_PROMPT = "You are a data mapping assistant. Analyze and suggest structured field mappings in JSON."

PROMPT_TEMPLATE = """
You are a smart field mapping assistant. Match fields between the source and target data based on naming, patterns, or logic.

For each target field, classify the mapping type:
- "direct": a field with the same meaning in the source (provide "source_field")
- "static": a hardcoded value (provide "value")
- "conditional": logic like if-then (provide "conditions")
- "concat": join multiple fields (provide "source_fields" and "separator")
- "split": extract part of a field (provide "source_field", "delimiter", and "index")
- "table": value-to-value lookup (provide "source_field" and "table" map)
- "date_conversion": convert a date format (provide "source_field" and "format")
- "skip": no clear match

Examples:

{{
  "target_field": "fullname",
  "mapping_type": "concat",
  "source_fields": ["Roepnaam", "Achternaam"],
  "separator": " "
}}

Now match these samples:

Source Sample:
{source}

Target Sample:
{target}

Return a JSON array:
[
  {{
    "target_field": "...",
    "mapping_type": "...",
    ...
  }}
]
"""

Record = Dict[str, Any]
Redactor = Callable[[Record], Record]


def build_prompt(source_data: Sequence[Record], target_data: Sequence[Record]) -> str:
    return PROMPT_TEMPLATE.format(
        source=json.dumps(list(source_data), indent=2, ensure_ascii=False, default=str),
        target=json.dumps(list(target_data), indent=2, ensure_ascii=False, default=str),
    )


def estimate_tokens(source_data: Sequence[Record], target_data: Sequence[Record]) -> int:
    """Rough prompt size in tokens (one token per four characters)."""
    size = len(json.dumps(list(source_data), default=str)) + len(json.dumps(list(target_data), default=str))
    return round(size / 4)


def extract_json_array(raw: str) -> List[Any]:
    """Parse the JSON array between the first ``[`` and the last ``]`` of ``raw``.

    Raises:
        OracleResponseError: if there are no brackets, the slice is not valid
            JSON, or it does not decode to a list.
    """
    start = raw.find("[")
    end = raw.rfind("]")
    if start == -1 or end == -1 or end < start:
        raise OracleResponseError("AI response does not contain a JSON array", raw=raw)
    try:
        parsed = json.loads(raw[start:end + 1])
    except json.JSONDecodeError as e:
        raise OracleResponseError(f"AI response contains malformed JSON: {e}", raw=raw) from e
    if not isinstance(parsed, list):
        raise OracleResponseError("AI response JSON is not a list of mappings", raw=raw)
    return parsed


class OracleResult(BaseModel):
    """Suggestions as returned by the oracle plus the canvas built from them."""
    mappings: List[Any]
    canvas: Dict[str, Any]
    warnings: List[MappingIssue] = Field(default_factory=list)

    def graph(self) -> CanvasGraph:
        return CanvasGraph.from_dict(self.canvas)


class MappingOracle:
    """Client for the mapping suggestion model.

    ``client`` is anything with the ``chat.completions.create`` coroutine of
    ``openai.AsyncOpenAI``; by default one is created from ``api_key``.
    ``redactor`` is applied to every sample record before it leaves the
    process.
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        max_samples: int = MAX_SAMPLES,
        redactor: Optional[Redactor] = None,
    ):
        self._client = client if client is not None else AsyncOpenAI(api_key=api_key)
        self.model = model
        self.temperature = temperature
        self.max_samples = max_samples
        self.redactor = redactor

    @classmethod
    def from_settings(cls, settings, client: Optional[Any] = None,
                      redactor: Optional[Redactor] = None) -> "MappingOracle":
        return cls(
            client=client,
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            temperature=settings.openai_temperature,
            max_samples=settings.ai_max_samples,
            redactor=redactor,
        )

    def prepare_samples(self, records: Sequence[Record]) -> List[Record]:
        """Cap to ``max_samples`` and redact."""
        samples = list(records)[: self.max_samples]
        if self.redactor is not None:
            samples = [self.redactor(r) for r in samples]
        return samples

    async def complete(self, prompt: str) -> str:
        response = await self._client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=self.temperature,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def suggest_raw(self, source_data: Sequence[Record], target_data: Sequence[Record]) -> List[Any]:
        """Ask the model and return its mapping list as parsed JSON."""
        source = self.prepare_samples(source_data)
        target = self.prepare_samples(target_data)
        tokens = estimate_tokens(source, target)
        logger.info(
            "Requesting mapping suggestions for %d source / %d target samples: ~%d tokens (~EUR %.3f)",
            len(source), len(target), tokens, tokens / 1000 * EUR_PER_1K_TOKENS,
        )
        raw = await self.complete(build_prompt(source, target))
        mappings = extract_json_array(raw)
        logger.info("Oracle returned %d mapping suggestions", len(mappings))
        return mappings

    async def suggest(
        self,
        source_data: Sequence[Record],
        target_data: Sequence[Record],
        warnings: Optional[List[MappingIssue]] = None,
    ) -> List[SuggestionBase]:
        return parse_suggestions(await self.suggest_raw(source_data, target_data), warnings)

    async def generate_canvas(self, source_data: Sequence[Record], target_data: Sequence[Record]) -> OracleResult:
        """Suggest mappings and lay them out as a canvas graph."""
        mappings = await self.suggest_raw(source_data, target_data)
        canvas = convert_mappings_to_canvas(mappings)
        graph = apply_template(canvas)
        return OracleResult(mappings=mappings, canvas=graph.to_dict(), warnings=canvas.warnings)
