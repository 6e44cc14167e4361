"""Pydantic payload models for the six stage contracts.

Contracts are structural: unknown keys are kept, strings and booleans are
strictly typed, numbers are range-checked and date/time fields must be in
canonical ISO-8601 form.
"""

import re
from datetime import date, datetime
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr

from decision_trace.models.enums import (
    ActionStatus,
    CandidateType,
    ClaimCategory,
    DecisionType,
    FragmentClassification,
    LessonCategory,
    Level,
    MissingInfoCategory,
    RootCauseCategory,
    Severity,
)
from decision_trace.models.ledger import DecisionLedger


# =============================================================================
# Canonical date / time types
# =============================================================================

_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(\.\d{1,6})?"
    r"(Z|[+-](\d{2}):(\d{2}))$"
)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _check_timestamp(value: str) -> str:
    match = _TIMESTAMP_RE.match(value)
    if not match:
        raise ValueError("must be an ISO-8601 timestamp like 2024-01-31T12:00:00Z")
    year, month, day, hour, minute, second = (int(g) for g in match.groups()[:6])
    # Reject well-formed but impossible values such as month 13
    datetime(year, month, day, hour, minute, second)
    if match.group(9) is not None:
        if int(match.group(9)) > 23 or int(match.group(10)) > 59:
            raise ValueError("timezone offset out of range")
    return value


def _check_date(value: str) -> str:
    if not _DATE_RE.match(value):
        raise ValueError("must be an ISO-8601 date like 2024-01-31")
    date.fromisoformat(value)
    return value


Timestamp = Annotated[StrictStr, AfterValidator(_check_timestamp)]
IsoDate = Annotated[StrictStr, AfterValidator(_check_date)]
UnitInterval = Annotated[StrictFloat, Field(ge=0, le=1)]


class ContractModel(BaseModel):
    """Base for contract payloads - extra keys are accepted."""

    model_config = ConfigDict(extra="allow")


class EvidenceAnchor(ContractModel):
    """Short verbatim excerpt plus a stable locator."""

    excerpt: StrictStr = Field(description="Verbatim excerpt, at most 20 words")
    chunk_index: Optional[StrictInt] = Field(None, ge=0)
    page: Optional[StrictInt] = Field(None, ge=1)
    line: Optional[StrictInt] = Field(None, ge=1)


# =============================================================================
# Stage 1: document digest
# =============================================================================


class NormalizedEntities(ContractModel):
    people: list[StrictStr]
    organizations: list[StrictStr]
    products: list[StrictStr]
    dates: list[StrictStr]


class ExtractedClaim(ContractModel):
    claim: StrictStr
    category: ClaimCategory
    evidence_anchor: Optional[EvidenceAnchor] = None


class Contradiction(ContractModel):
    statement1: StrictStr
    statement2: StrictStr
    description: StrictStr
    evidence_anchor1: Optional[EvidenceAnchor] = None
    evidence_anchor2: Optional[EvidenceAnchor] = None


class MissingInfo(ContractModel):
    information: StrictStr
    why_needed: StrictStr
    category: MissingInfoCategory


class DecisionCandidate(ContractModel):
    text: StrictStr = Field(description="Verbatim candidate text")
    type: CandidateType
    confidence: UnitInterval


class Fragment(ContractModel):
    quote: StrictStr = Field(description="Verbatim fragment")
    classification: FragmentClassification
    context: Optional[StrictStr] = None
    linked_candidate_index: Optional[StrictInt] = Field(None, ge=0)


class DocumentDigest(ContractModel):
    """Forensic digest of the raw document."""

    has_clear_decision: StrictBool
    normalized_entities: NormalizedEntities
    extracted_claims: list[ExtractedClaim]
    contradictions: list[Contradiction]
    missing_info: list[MissingInfo]
    decision_candidates: list[DecisionCandidate]
    fragments: list[Fragment]
    no_decision_message: Optional[StrictStr] = None
    extracted_at: Timestamp


# =============================================================================
# Stage 2: decision hypothesis
# =============================================================================


class OwnerCandidate(ContractModel):
    name: StrictStr
    role: Optional[StrictStr] = None
    confidence: UnitInterval
    evidence_anchor: Optional[EvidenceAnchor] = None


class DecisionCriterion(ContractModel):
    criterion: StrictStr
    inferred_from: StrictStr
    evidence_anchor: Optional[EvidenceAnchor] = None


class HypothesisConfidence(ContractModel):
    score: UnitInterval
    reasons: list[StrictStr]


class DecisionHypothesis(ContractModel):
    """Inferred decision built from the digest."""

    has_clear_decision: StrictBool
    inferred_decision: StrictStr
    decision_type: DecisionType
    decision_owner_candidates: list[OwnerCandidate]
    decision_criteria: list[DecisionCriterion]
    confidence: HypothesisConfidence
    decision_date: Optional[IsoDate] = None


# =============================================================================
# Stage 3: context analysis
# =============================================================================


class ContextDetail(ContractModel):
    business_context: StrictStr
    market_conditions: Optional[StrictStr] = None
    organizational_factors: list[StrictStr]
    external_factors: list[StrictStr]


class Stakeholder(ContractModel):
    name: StrictStr
    role: Optional[StrictStr] = None
    influence: Optional[Level] = None


class ContextAnalysis(ContractModel):
    context_analysis: ContextDetail
    stakeholders: list[Stakeholder]
    analysis_date: Timestamp


# =============================================================================
# Stage 4: outcome analysis
# =============================================================================


class ExpectedVsActual(ContractModel):
    metric: StrictStr
    expected: StrictStr
    actual: StrictStr
    variance: Optional[StrictStr] = None


class OutcomeDetail(ContractModel):
    actual_outcomes: dict[str, Any]
    expected_vs_actual: list[ExpectedVsActual]
    success_indicators: list[StrictStr]
    failure_indicators: list[StrictStr]


class ImpactAssessment(ContractModel):
    financial_impact: Optional[StrictStr] = None
    operational_impact: Optional[StrictStr] = None
    reputation_impact: Optional[StrictStr] = None


class OutcomeAnalysis(ContractModel):
    outcome_analysis: OutcomeDetail
    impact_assessment: Optional[ImpactAssessment] = None
    analysis_date: Timestamp


# =============================================================================
# Stage 5: root cause analysis
# =============================================================================


class RootCause(ContractModel):
    cause: StrictStr
    category: RootCauseCategory
    severity: Severity
    evidence: list[StrictStr]


class RootCauseAnalysis(ContractModel):
    root_causes: list[RootCause] = Field(min_length=1)
    contributing_factors: list[StrictStr]
    analysis_date: Timestamp


# =============================================================================
# Stage 6: lessons, recommendations and the decision ledger
# =============================================================================


class Lesson(ContractModel):
    lesson: StrictStr
    category: LessonCategory
    priority: Level


class Recommendation(ContractModel):
    recommendation: StrictStr
    priority: Level
    feasibility: Level
    expected_impact: Optional[StrictStr] = None


class ActionItem(ContractModel):
    action: StrictStr
    owner: Optional[StrictStr] = None
    due_date: Optional[IsoDate] = None
    status: Optional[ActionStatus] = None


class LedgerReport(ContractModel):
    """Final stage output carrying the Decision Ledger."""

    lessons_learned: list[Lesson] = Field(min_length=1)
    recommendations: list[Recommendation] = Field(min_length=1)
    action_items: list[ActionItem]
    decision_ledger: DecisionLedger
    completion_date: Timestamp
