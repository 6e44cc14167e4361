"""Decision Ledger models.

The ledger is the aggregate audit record produced by the final stage:
decision outcome, flow of decision steps, evidence / risk / assumption
ledgers and the accountability record. ``trace_score`` and
``score_rationale`` are owned by the deterministic scorer; any value the
reasoning service supplies is advisory only.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr

from decision_trace.models.enums import Actor, Level


class LedgerModel(BaseModel):
    """Base for ledger entries - unknown keys are kept, not rejected."""

    model_config = ConfigDict(extra="allow")


class DecisionEntry(LedgerModel):
    """Decision outcome with its audit score."""

    outcome: StrictStr = Field(description="What was decided")
    confidence: Level = Field(description="low | medium | high")
    trace_score: Optional[StrictFloat] = Field(
        None, ge=0, le=100,
        description="0-100 audit score; recomputed deterministically",
    )
    score_rationale: list[StrictStr] = Field(
        default_factory=list,
        description="3-6 concrete reasons supporting trace_score",
    )


class FlowStep(LedgerModel):
    """One step of the decision flow."""

    step: StrictInt = Field(ge=0)
    label: StrictStr
    actor: Actor
    ai_influence: StrictBool
    override_applied: StrictBool
    rules_applied: list[StrictStr] = Field(default_factory=list)
    confidence_delta: StrictFloat = 0.0


class EvidenceEntry(LedgerModel):
    evidence: StrictStr
    used: StrictBool
    weight: Level
    confidence_impact: StrictFloat = 0.0
    reason: StrictStr = ""


class RiskEntry(LedgerModel):
    risk: StrictStr
    identified: StrictBool = True
    accepted: StrictBool
    severity: StrictStr = "medium"
    accepted_by: StrictStr = ""
    mitigation: StrictStr = ""


class AssumptionEntry(LedgerModel):
    assumption: StrictStr
    explicit: StrictBool = False
    validated: StrictBool
    owner: StrictStr = ""
    invalidation_impact: StrictStr = ""


class AccountabilityEntry(LedgerModel):
    """RACI-style accountability record."""

    responsible: StrictStr = ""
    accountable: StrictStr = ""
    consulted: list[StrictStr] = Field(default_factory=list)
    informed: list[StrictStr] = Field(default_factory=list)


class DecisionLedger(LedgerModel):
    """Top-level decision ledger."""

    decision: DecisionEntry
    flow: list[FlowStep] = Field(default_factory=list)
    evidence_ledger: list[EvidenceEntry] = Field(default_factory=list)
    risk_ledger: list[RiskEntry] = Field(default_factory=list)
    assumption_ledger: list[AssumptionEntry] = Field(default_factory=list)
    accountability: AccountabilityEntry
