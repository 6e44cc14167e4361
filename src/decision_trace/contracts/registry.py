"""Stage contract registry.

One lookup table maps each stage number to its contract, and a single
generic validator checks parsed payloads against it. Validation never
raises for bad payloads; it reports every offending field with a
dotted/indexed path such as ``fragments[2].classification``.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ValidationError

from decision_trace.contracts.stage_models import (
    ContextAnalysis,
    DecisionHypothesis,
    DocumentDigest,
    LedgerReport,
    OutcomeAnalysis,
    RootCauseAnalysis,
)
from decision_trace.errors import ContractViolationError, UnknownStageError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class FieldError:
    """A single contract violation."""

    path: str
    reason: str

    def __str__(self) -> str:
        return f"{self.path}: {self.reason}"


@dataclass(frozen=True)
class ConditionalField:
    """Field that becomes required when another field holds a given value."""

    name: str
    when_field: str
    equals: Any


@dataclass(frozen=True)
class StageContract:
    """Contract entry for one stage."""

    stage_number: int
    stage_id: str
    name: str
    model: type[BaseModel]
    conditional_fields: tuple[ConditionalField, ...] = ()


@dataclass
class ValidationOutcome:
    """Result of validating a payload: either a record or field errors."""

    ok: bool
    record: Optional[dict[str, Any]] = None
    model: Optional[BaseModel] = None
    errors: list[FieldError] = field(default_factory=list)


STAGE_CONTRACTS: dict[int, StageContract] = {
    1: StageContract(
        1,
        "document_digest",
        "Document Digest",
        DocumentDigest,
        conditional_fields=(
            ConditionalField("no_decision_message", "has_clear_decision", False),
        ),
    ),
    2: StageContract(2, "decision_hypothesis", "Decision Hypothesis", DecisionHypothesis),
    3: StageContract(3, "context_analysis", "Context Analysis", ContextAnalysis),
    4: StageContract(4, "outcome_analysis", "Outcome Analysis", OutcomeAnalysis),
    5: StageContract(5, "root_cause_analysis", "Root Cause Analysis", RootCauseAnalysis),
    6: StageContract(6, "decision_ledger", "Decision Ledger", LedgerReport),
}

STAGE_NUMBERS: tuple[int, ...] = tuple(sorted(STAGE_CONTRACTS))
FINAL_STAGE = STAGE_NUMBERS[-1]


def get_contract(stage_number: int) -> StageContract:
    """Look up a stage contract.

    Raises:
        UnknownStageError: If no contract is registered for the stage.
    """
    try:
        return STAGE_CONTRACTS[stage_number]
    except KeyError:
        raise UnknownStageError(stage_number) from None


def format_loc(loc: tuple) -> str:
    """Render a pydantic error location as ``a.b[0].c``."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path or "<root>"


def _check_conditionals(contract: StageContract, obj: dict) -> list[FieldError]:
    errors = []
    for cond in contract.conditional_fields:
        if obj.get(cond.when_field) is not cond.equals:
            continue
        value = obj.get(cond.name)
        if not isinstance(value, str) or not value.strip():
            errors.append(FieldError(
                cond.name,
                f"Field required when {cond.when_field} is {str(cond.equals).lower()}",
            ))
    return errors


def validate(stage_number: int, obj: Any) -> ValidationOutcome:
    """Validate a parsed payload against the stage contract.

    Args:
        stage_number: 1-based stage number.
        obj: Parsed JSON value from the reasoning service.

    Returns:
        ValidationOutcome with the normalized record on success, or every
        FieldError found.

    Raises:
        UnknownStageError: If the stage number has no contract.
    """
    contract = get_contract(stage_number)

    if not isinstance(obj, dict):
        return ValidationOutcome(
            ok=False,
            errors=[FieldError("<root>", f"Expected a JSON object, got {type(obj).__name__}")],
        )

    errors: list[FieldError] = []
    model = None
    try:
        model = contract.model.model_validate(obj)
    except ValidationError as e:
        errors.extend(FieldError(format_loc(err["loc"]), err["msg"]) for err in e.errors())

    errors.extend(_check_conditionals(contract, obj))

    if errors:
        logger.debug(
            "contract_violation",
            stage=stage_number,
            stage_id=contract.stage_id,
            error_count=len(errors),
        )
        return ValidationOutcome(ok=False, errors=errors)

    return ValidationOutcome(ok=True, record=model.model_dump(mode="json"), model=model)


def validate_or_raise(stage_number: int, obj: Any) -> dict[str, Any]:
    """Validate and return the record, raising on any violation.

    Raises:
        ContractViolationError: Carrying all FieldErrors.
        UnknownStageError: If the stage number has no contract.
    """
    outcome = validate(stage_number, obj)
    if not outcome.ok:
        raise ContractViolationError(stage_number, outcome.errors)
    return outcome.record
