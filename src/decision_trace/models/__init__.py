"""Pydantic data models for the pipeline."""

from .enums import (
    ActionStatus,
    Actor,
    CandidateType,
    ClaimCategory,
    DecisionType,
    FragmentClassification,
    LessonCategory,
    Level,
    MissingInfoCategory,
    RootCauseCategory,
    Severity,
    StageStatus,
)
from .ledger import (
    AccountabilityEntry,
    AssumptionEntry,
    DecisionEntry,
    DecisionLedger,
    EvidenceEntry,
    FlowStep,
    RiskEntry,
)
from .stages import PipelineRun, StageResult

__all__ = [
    # Enums
    "ActionStatus",
    "Actor",
    "CandidateType",
    "ClaimCategory",
    "DecisionType",
    "FragmentClassification",
    "LessonCategory",
    "Level",
    "MissingInfoCategory",
    "RootCauseCategory",
    "Severity",
    "StageStatus",
    # Ledger
    "AccountabilityEntry",
    "AssumptionEntry",
    "DecisionEntry",
    "DecisionLedger",
    "EvidenceEntry",
    "FlowStep",
    "RiskEntry",
    # Runs
    "PipelineRun",
    "StageResult",
]
