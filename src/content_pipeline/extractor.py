# src/content_pipeline/extractor.py
"""
Resilient extraction of structured records from raw model output.

Model responses are expected to contain a JSON object but routinely arrive
wrapped in markdown fences, surrounded by prose, sprinkled with control
characters or carrying unescaped quotes inside string values. ``extract``
cleans the text, makes one repair attempt and validates the result against
a list of required fields. Expected failures are returned as values, never
raised, so every caller has to handle ``Ok``, ``Malformed`` and
``InvalidSchema`` explicitly.
"""
import json
import math
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Sequence, Tuple, Union

logger = logging.getLogger(__name__)

FieldKind = Literal["string", "number", "list", "object"]

_LEADING_FENCE = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?```\s*$")
# Raw \t, \n and \r are kept: they are JSON whitespace between tokens and
# json.loads(strict=False) accepts them inside strings.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f\u2028\u2029\ufffd]")
_STRUCTURAL_AFTER_STRING = {",", "}", "]", ":"}


@dataclass(frozen=True)
class FieldRequirement:
    """A field the parsed object must carry"""
    name: str
    kind: FieldKind = "string"
    non_empty: bool = False


@dataclass(frozen=True)
class Ok:
    value: Dict[str, Any]


@dataclass(frozen=True)
class Malformed:
    raw: str


@dataclass(frozen=True)
class InvalidSchema:
    raw: str
    missing_fields: Tuple[str, ...] = field(default_factory=tuple)


StructuredParseResult = Union[Ok, Malformed, InvalidSchema]


CONTENT_SCHEMA: Tuple[FieldRequirement, ...] = (
    FieldRequirement("title", "string", non_empty=True),
    FieldRequirement("content", "string", non_empty=True),
)

SEO_SCHEMA: Tuple[FieldRequirement, ...] = CONTENT_SCHEMA + (
    FieldRequirement("seo_score", "number"),
)

RESEARCH_SUMMARY_SCHEMA: Tuple[FieldRequirement, ...] = (
    FieldRequirement("title", "string", non_empty=True),
    FieldRequirement("key_points", "list"),
    FieldRequirement("relevance_score", "number"),
    FieldRequirement("source_authority", "string", non_empty=True),
)

OUTLINE_SCHEMA: Tuple[FieldRequirement, ...] = (
    FieldRequirement("headline", "string", non_empty=True),
    FieldRequirement("sections", "list", non_empty=True),
)

FALLBACK_RESEARCH_SCHEMA: Tuple[FieldRequirement, ...] = (
    FieldRequirement("summaries", "list", non_empty=True),
)


def strip_code_fences(text: str) -> str:
    """Remove a markdown fence wrapping the response, if any."""
    text = _LEADING_FENCE.sub("", text, count=1)
    return _TRAILING_FENCE.sub("", text, count=1)


def remove_control_characters(text: str) -> str:
    return _CONTROL_CHARS.sub("", text)


def slice_object_span(text: str) -> str:
    """Keep the span from the first '{' to the last '}'."""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        return ""
    return text[start:end + 1]


def clean_response(raw: str) -> str:
    """Apply fence stripping, control character removal and span slicing."""
    cleaned = strip_code_fences(raw.strip())
    cleaned = remove_control_characters(cleaned)
    return slice_object_span(cleaned)


def repair_unescaped_quotes(text: str) -> str:
    """
    Escape double quotes that appear inside string values.

    A quote inside a string only closes it when the next non-whitespace
    character is a JSON structural token (or the text ends). Any other
    quote is treated as literal text and escaped.
    """
    out: List[str] = []
    in_string = False
    i = 0
    length = len(text)
    while i < length:
        char = text[i]
        if not in_string:
            out.append(char)
            if char == '"':
                in_string = True
            i += 1
            continue

        if char == "\\" and i + 1 < length:
            out.append(text[i:i + 2])
            i += 2
            continue

        if char == '"':
            j = i + 1
            while j < length and text[j].isspace():
                j += 1
            if j >= length or text[j] in _STRUCTURAL_AFTER_STRING:
                out.append(char)
                in_string = False
            else:
                out.append('\\"')
            i += 1
            continue

        out.append(char)
        i += 1
    return "".join(out)


def _matches_kind(value: Any, requirement: FieldRequirement) -> bool:
    kind = requirement.kind
    if kind == "string":
        if not isinstance(value, str):
            return False
        return bool(value.strip()) if requirement.non_empty else True
    if kind == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return isinstance(value, int) or math.isfinite(value)
    if kind == "list":
        if not isinstance(value, list):
            return False
        return bool(value) if requirement.non_empty else True
    if kind == "object":
        if not isinstance(value, dict):
            return False
        return bool(value) if requirement.non_empty else True
    return False


def validate_fields(parsed: Dict[str, Any], schema: Sequence[FieldRequirement]) -> List[str]:
    """Return the names of requirements the object does not satisfy."""
    return [
        requirement.name
        for requirement in schema
        if requirement.name not in parsed or not _matches_kind(parsed[requirement.name], requirement)
    ]


def _loads_object(text: str) -> Union[Dict[str, Any], None]:
    try:
        parsed = json.loads(text, strict=False)
    except (json.JSONDecodeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


def extract(raw: str, schema: Sequence[FieldRequirement] = ()) -> StructuredParseResult:
    """
    Turn a raw model response into a validated structured record.

    Args:
        raw: Text expected to contain a JSON object
        schema: Fields the object must carry

    Returns:
        Ok with the parsed object, Malformed when no JSON object can be
        recovered after one repair pass, InvalidSchema when required fields
        are absent or have the wrong type
    """
    if not isinstance(raw, str) or not raw.strip():
        return Malformed(raw=raw if isinstance(raw, str) else "")

    cleaned = clean_response(raw)
    if not cleaned:
        logger.debug("No JSON object span found in model output")
        return Malformed(raw=raw)

    parsed = _loads_object(cleaned)
    if parsed is None:
        parsed = _loads_object(repair_unescaped_quotes(cleaned))
        if parsed is None:
            logger.warning(f"Could not recover JSON from model output: {raw[:200]!r}")
            return Malformed(raw=raw)
        logger.info("Model output parsed after quote repair")

    missing = validate_fields(parsed, schema)
    if missing:
        logger.warning(f"Model output is missing required fields: {missing}")
        return InvalidSchema(raw=raw, missing_fields=tuple(missing))

    return Ok(value=parsed)
