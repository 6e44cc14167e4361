"""JSON extraction from reasoning-service responses.

Parsing yields a tagged result: ``ParsedJson`` when a JSON object was
recovered, ``ParseFailure`` otherwise. There is no empty-object fallback.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Union

import structlog

from decision_trace.errors import ParseError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ParsedJson:
    value: dict[str, Any]


@dataclass(frozen=True)
class ParseFailure:
    raw_text: str
    reason: str

    def to_error(self) -> ParseError:
        return ParseError(self.raw_text, self.reason)


ParseResult = Union[ParsedJson, ParseFailure]

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


def _extract_json_object(text: str) -> str | None:
    """Find the first balanced ``{...}`` block, ignoring braces inside strings."""
    depth = 0
    start = None
    in_string = False
    escape_next = False

    for i, char in enumerate(text):
        if escape_next:
            escape_next = False
            continue
        if char == "\\" and in_string:
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue

        if char == "{":
            if depth == 0:
                start = i
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0 and start is not None:
                return text[start:i + 1]

    return None


def _clean_json_string(text: str) -> str:
    # BOM / zero-width characters and trailing commas are common model slips
    text = text.strip("\ufeff\u200b\u200c\u200d")
    return _TRAILING_COMMA_RE.sub(r"\1", text)


def _loads(text: str) -> Any:
    return json.loads(_clean_json_string(text))


def parse_response(response_text: str) -> ParseResult:
    """Recover a JSON object from a model response.

    Tries, in order: the text as-is, the contents of a markdown code
    block, and the first balanced brace block.

    Args:
        response_text: Raw text returned by the reasoning service.

    Returns:
        ParsedJson with the decoded object, or ParseFailure with the reason.
    """
    if not response_text or not response_text.strip():
        return ParseFailure(response_text or "", "empty response")

    text = response_text.strip()
    candidates = [text]
    block = _CODE_BLOCK_RE.search(text)
    if block:
        candidates.append(block.group(1).strip())
    extracted = _extract_json_object(text)
    if extracted:
        candidates.append(extracted)

    last_reason = "no JSON object found"
    for candidate in candidates:
        try:
            value = _loads(candidate)
        except json.JSONDecodeError as e:
            last_reason = f"invalid JSON: {e.msg} at line {e.lineno} column {e.colno}"
            continue
        if isinstance(value, dict):
            return ParsedJson(value)
        last_reason = f"expected a JSON object, got {type(value).__name__}"

    logger.debug("json_parse_failed", reason=last_reason, preview=text[:300])
    return ParseFailure(response_text, last_reason)


def parse_or_raise(response_text: str) -> dict[str, Any]:
    """Parse a response, raising ParseError on failure."""
    result = parse_response(response_text)
    if isinstance(result, ParseFailure):
        raise result.to_error()
    return result.value
