"""Schema contracts for stage outputs."""

from .registry import (
    FINAL_STAGE,
    STAGE_CONTRACTS,
    STAGE_NUMBERS,
    FieldError,
    StageContract,
    ValidationOutcome,
    get_contract,
    validate,
    validate_or_raise,
)

__all__ = [
    "FINAL_STAGE",
    "STAGE_CONTRACTS",
    "STAGE_NUMBERS",
    "FieldError",
    "StageContract",
    "ValidationOutcome",
    "get_contract",
    "validate",
    "validate_or_raise",
]
