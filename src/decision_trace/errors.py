"""Error taxonomy for the decision trace pipeline.

Stage 1 errors of any kind end the run. From Stage 2 onward the orchestrator
catches these, records them on the owning StageResult and moves on.
"""

from dataclasses import dataclass
from typing import Optional, Sequence


class DecisionTraceError(Exception):
    """Base class for all pipeline errors."""

    pass


class ReasoningServiceError(DecisionTraceError):
    """The reasoning service call failed.

    ``status_code`` is None for transport-level failures (connection reset,
    timeout), which the retry executor treats as transient.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    def retryable_for(self, retryable_codes: Sequence[int]) -> bool:
        if self.status_code is None:
            return True
        return self.status_code in retryable_codes


class ParseError(DecisionTraceError):
    """The service responded with text that is not a JSON object."""

    def __init__(self, raw_text: str, reason: str):
        preview = raw_text[:150] if raw_text else "EMPTY"
        super().__init__(f"Response is not a JSON object ({reason}). Response preview: {preview}")
        self.raw_text = raw_text
        self.reason = reason


class ContractViolationError(DecisionTraceError):
    """A parsed stage payload does not satisfy its stage contract."""

    def __init__(self, stage_number: int, field_errors: list):
        self.stage_number = stage_number
        self.field_errors = list(field_errors)
        details = "; ".join(f"{e.path}: {e.reason}" for e in self.field_errors)
        super().__init__(f"Stage {stage_number} contract violation: {details}")


class UnknownStageError(DecisionTraceError, KeyError):
    """No contract or prompt is registered for the stage number."""

    def __init__(self, stage_number: int):
        super().__init__(f"Unknown stage number: {stage_number}")
        self.stage_number = stage_number

    def __str__(self) -> str:
        return self.args[0]


class EvidenceFirewallError(DecisionTraceError, ValueError):
    """Raw input was offered to a stage that must not see it."""

    pass


class PipelineInputError(DecisionTraceError, ValueError):
    """The run request cannot start (no raw text, document or cached digest)."""

    pass


@dataclass(frozen=True)
class LeakageWarning:
    """Non-fatal notice that stage fields overlap heavily with the raw input."""

    stage_number: int
    field_paths: tuple[str, ...]
    threshold: float

    def message(self) -> str:
        return (
            f"Non-echo violation detected in fields: {', '.join(self.field_paths)}. "
            f"These fields contain >{self.threshold:g}% overlap with input text."
        )
