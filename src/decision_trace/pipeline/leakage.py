"""Non-echo validation of stage output against the raw input.

Overlap is the word-level longest common subsequence divided by the
shorter of the two word counts. Fields meant to hold verbatim text
(quotes, citations, excerpts, evidence anchors) are exempt, including
anything nested under them.
"""

from dataclasses import dataclass
from typing import Any

import structlog
from rapidfuzz.distance import LCSseq

logger = structlog.get_logger(__name__)

DEFAULT_THRESHOLD = 30.0
DEFAULT_MIN_FIELD_WORDS = 4

VERBATIM_KEY_MARKERS = ("quote", "citation", "excerpt", "anchor")


@dataclass(frozen=True)
class LeakageViolation:
    field_path: str
    overlap_percent: float


def normalize_text(text: str) -> str:
    return " ".join(text.lower().split())


def text_overlap(field_text: str, source_text: str) -> float:
    """Percentage of word overlap between a field and the source text.

    Returns:
        0-100. Identical texts (after normalization) score 100.
    """
    if not field_text or not source_text:
        return 0.0

    normalized_field = normalize_text(field_text)
    normalized_source = normalize_text(source_text)
    if normalized_field == normalized_source:
        return 100.0

    field_words = normalized_field.split()
    source_words = normalized_source.split()
    if not field_words or not source_words:
        return 0.0

    lcs = LCSseq.similarity(field_words, source_words)
    return lcs / min(len(field_words), len(source_words)) * 100


def _is_verbatim_key(key: str) -> bool:
    key = key.lower()
    return any(marker in key for marker in VERBATIM_KEY_MARKERS)


class _Scanner:
    """Walks a record and collects leaking string fields."""

    def __init__(self, source: str, threshold: float, min_field_words: int):
        self.source = source
        self.threshold = threshold
        self.min_field_words = min_field_words
        self.normalized_source = normalize_text(source)
        self.violations: list[LeakageViolation] = []

    def scan(self, value: Any, path: str) -> None:
        if isinstance(value, dict):
            for key, item in value.items():
                if _is_verbatim_key(str(key)):
                    continue
                self.scan(item, f"{path}.{key}" if path else str(key))
        elif isinstance(value, list):
            for index, item in enumerate(value):
                self.scan(item, f"{path}[{index}]")
        elif isinstance(value, str) and value.strip():
            self._check(value, path)

    def _check(self, text: str, path: str) -> None:
        normalized = normalize_text(text)
        if normalized != self.normalized_source and len(normalized.split()) < self.min_field_words:
            return
        overlap = text_overlap(text, self.source)
        if overlap > self.threshold:
            self.violations.append(LeakageViolation(path, round(overlap, 1)))


def find_leakage(
    record: dict[str, Any],
    raw_input: str,
    threshold: float = DEFAULT_THRESHOLD,
    min_field_words: int = DEFAULT_MIN_FIELD_WORDS,
) -> list[LeakageViolation]:
    """Find every field of ``record`` that echoes ``raw_input``.

    Args:
        record: Validated stage record.
        raw_input: The raw document text.
        threshold: Overlap percentage above which a field is flagged.
        min_field_words: Fields with fewer words are not checked unless
            they are an exact copy of the whole input.

    Returns:
        Violations in document order, each with its dotted/indexed path.
    """
    if not raw_input or not raw_input.strip():
        return []
    scanner = _Scanner(raw_input, threshold, min_field_words)
    scanner.scan(record, "")
    if scanner.violations:
        logger.debug(
            "leakage_detected",
            fields=[v.field_path for v in scanner.violations],
            threshold=threshold,
        )
    return scanner.violations


def validate_non_echo(
    record: dict[str, Any],
    raw_input: str,
    threshold: float = DEFAULT_THRESHOLD,
    min_field_words: int = DEFAULT_MIN_FIELD_WORDS,
) -> list[str]:
    """Return the paths of fields exceeding the overlap threshold."""
    return [v.field_path for v in find_leakage(record, raw_input, threshold, min_field_words)]
