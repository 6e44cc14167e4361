"""Decision trace pipeline: prompts, guards, scoring, persistence and orchestration."""

from .leakage import LeakageViolation, find_leakage, validate_non_echo
from .orchestrator import DecisionTracePipeline, run_pipeline
from .persistence import InMemoryStageStore, JsonFileStageStore, PersistenceClient
from .prompt_builder import build_prompt
from .scoring import (
    LedgerScore,
    apply_score,
    compute_trace_score,
    derive_score_rationale,
    ensure_score_rationale,
    is_rationale_too_generic,
    normalize_ledger,
    score_ledger,
)

__all__ = [
    "DecisionTracePipeline",
    "InMemoryStageStore",
    "JsonFileStageStore",
    "LeakageViolation",
    "LedgerScore",
    "PersistenceClient",
    "apply_score",
    "build_prompt",
    "compute_trace_score",
    "derive_score_rationale",
    "ensure_score_rationale",
    "find_leakage",
    "is_rationale_too_generic",
    "normalize_ledger",
    "run_pipeline",
    "score_ledger",
    "validate_non_echo",
]
