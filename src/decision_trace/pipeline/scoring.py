"""Deterministic trace scoring of a Decision Ledger.

The score and its rationale are computed purely from ledger contents, so
the same ledger always yields the same result and any run can be audited
offline. A score supplied by the reasoning service is only ever reported
alongside, never trusted.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional, Sequence

import structlog

from decision_trace.models.enums import Level
from decision_trace.models.ledger import (
    AssumptionEntry,
    DecisionLedger,
    EvidenceEntry,
    RiskEntry,
)

logger = structlog.get_logger(__name__)

BASELINE_SCORE = 70
EVIDENCE_WEIGHT_POINTS = {Level.HIGH: 5, Level.MEDIUM: 3, Level.LOW: 1}
UNUSED_EVIDENCE_PENALTY = -2
UNMITIGATED_ACCEPTED_RISK_PENALTY = -3
IDENTIFIED_RISK_PENALTY = -1
VALIDATED_ASSUMPTION_POINTS = 1
UNVALIDATED_ASSUMPTION_PENALTY = -2

MIN_RATIONALE_ITEMS = 3
MAX_RATIONALE_ITEMS = 6
MIN_AVG_RATIONALE_LENGTH = 25


# =============================================================================
# Score
# =============================================================================


def compute_trace_score(
    evidence: Iterable[EvidenceEntry],
    risks: Iterable[RiskEntry],
    assumptions: Iterable[AssumptionEntry],
) -> int:
    """Compute the 0-100 trace score.

    Baseline 70. Used evidence adds 5/3/1 by weight, unused evidence costs 2.
    An accepted risk with no mitigation costs 3, any other identified risk
    costs 1. A validated assumption adds 1, an unvalidated one costs 2.
    """
    score = BASELINE_SCORE

    for item in evidence:
        if item.used:
            score += EVIDENCE_WEIGHT_POINTS[item.weight]
        else:
            score += UNUSED_EVIDENCE_PENALTY

    for risk in risks:
        if risk.accepted and not risk.mitigation.strip():
            score += UNMITIGATED_ACCEPTED_RISK_PENALTY
        elif risk.identified:
            score += IDENTIFIED_RISK_PENALTY

    for assumption in assumptions:
        if assumption.validated:
            score += VALIDATED_ASSUMPTION_POINTS
        else:
            score += UNVALIDATED_ASSUMPTION_PENALTY

    return max(0, min(100, round(score)))


# =============================================================================
# Rationale
# =============================================================================


def _evidence_sentence(evidence: Sequence[EvidenceEntry]) -> str:
    if not evidence:
        return "Evidence: no evidence items were recorded in the ledger."
    used = sum(1 for e in evidence if e.used)
    tiers = []
    for level in (Level.HIGH, Level.MEDIUM, Level.LOW):
        count = sum(1 for e in evidence if e.weight == level)
        if count:
            tiers.append(f"{count} {level.value}")
    return (
        f"Evidence: {len(evidence)} item(s), {used} used "
        f"({', '.join(tiers)} weight)."
    )


def _risk_sentence(risks: Sequence[RiskEntry]) -> str:
    if not risks:
        return "Risks: no risks were recorded in the ledger."
    accepted = sum(1 for r in risks if r.accepted)
    mitigated = sum(1 for r in risks if r.mitigation.strip())
    return (
        f"Risks: {len(risks)} identified; {accepted} accepted; "
        f"{mitigated} with mitigation, {len(risks) - mitigated} without."
    )


def _assumption_sentence(assumptions: Sequence[AssumptionEntry]) -> str:
    if not assumptions:
        return "Assumptions: no assumptions were recorded in the ledger."
    validated = sum(1 for a in assumptions if a.validated)
    return (
        f"Assumptions: {len(assumptions)} total; {validated} validated, "
        f"{len(assumptions) - validated} unvalidated."
    )


def _flow_sentence(ledger: DecisionLedger) -> str:
    if not ledger.flow:
        return "Decision flow: no decision steps were recorded."
    ai_steps = sum(1 for s in ledger.flow if s.ai_influence)
    overrides = sum(1 for s in ledger.flow if s.override_applied)
    return (
        f"Decision flow: {len(ledger.flow)} step(s); AI influenced {ai_steps}; "
        f"override applied in {overrides}."
    )


def _accountability_sentence(ledger: DecisionLedger) -> str:
    acc = ledger.accountability
    responsible = "set" if acc.responsible.strip() else "not set"
    accountable = "set" if acc.accountable.strip() else "not set"
    return (
        f"Accountability: responsible {responsible}; accountable {accountable}; "
        f"{len(acc.consulted)} consulted; {len(acc.informed)} informed."
    )


def derive_score_rationale(ledger: DecisionLedger) -> list[str]:
    """Derive concrete reasons from the ledger contents.

    Covers evidence by weight tier, risks by mitigation status, assumption
    validation, flow AI-influence/override counts and accountability
    completeness. Deterministic.
    """
    reasons = [
        _evidence_sentence(ledger.evidence_ledger),
        _risk_sentence(ledger.risk_ledger),
        _assumption_sentence(ledger.assumption_ledger),
        _flow_sentence(ledger),
        _accountability_sentence(ledger),
    ]
    return reasons[:MAX_RATIONALE_ITEMS]


def is_rationale_too_generic(rationale: Optional[Sequence[str]]) -> bool:
    """True if the rationale is missing, has fewer than 3 entries or is terse."""
    if not rationale or len(rationale) < MIN_RATIONALE_ITEMS:
        return True
    avg_len = sum(len(r.strip()) for r in rationale) / len(rationale)
    return avg_len < MIN_AVG_RATIONALE_LENGTH


def ensure_score_rationale(
    rationale: Optional[Sequence[str]], ledger: DecisionLedger
) -> list[str]:
    """Return a rationale that can support the trace score.

    Specific rationale is kept as-is (capped at 6). Generic rationale keeps
    only its substantive entries and is topped up with derived sentences.
    """
    current = [r.strip() for r in rationale or [] if r and r.strip()]
    if not is_rationale_too_generic(current):
        return current[:MAX_RATIONALE_ITEMS]

    merged: list[str] = []
    for reason in [r for r in current if len(r) >= MIN_AVG_RATIONALE_LENGTH] + derive_score_rationale(ledger):
        if reason not in merged:
            merged.append(reason)
    return merged[:MAX_RATIONALE_ITEMS]


# =============================================================================
# Applying the score
# =============================================================================


@dataclass(frozen=True)
class LedgerScore:
    trace_score: int
    rationale: list[str]
    reported_score: Optional[float] = None

    @property
    def mismatch(self) -> bool:
        """True when the service reported a different score."""
        return self.reported_score is not None and round(self.reported_score) != self.trace_score

    def mismatch_warning(self) -> str:
        return (
            f"Reported trace score {self.reported_score:g} replaced by "
            f"deterministic score {self.trace_score}"
        )


def score_ledger(ledger: DecisionLedger) -> LedgerScore:
    """Score a ledger and settle its rationale."""
    score = compute_trace_score(
        ledger.evidence_ledger, ledger.risk_ledger, ledger.assumption_ledger
    )
    rationale = ensure_score_rationale(ledger.decision.score_rationale, ledger)
    return LedgerScore(
        trace_score=score,
        rationale=rationale,
        reported_score=ledger.decision.trace_score,
    )


def apply_score(ledger: DecisionLedger, score: Optional[LedgerScore] = None) -> DecisionLedger:
    """Return a copy of the ledger carrying the deterministic score and rationale."""
    score = score or score_ledger(ledger)
    decision = ledger.decision.model_copy(
        update={"trace_score": float(score.trace_score), "score_rationale": list(score.rationale)}
    )
    return ledger.model_copy(update={"decision": decision})


# =============================================================================
# Lenient normalization of ledger-like JSON
# =============================================================================

_LEVELS = {level.value for level in Level}
_ACTORS = {"AI", "Human", "System"}


def _pick(obj: dict, *keys: str, default: Any = None) -> Any:
    for key in keys:
        if obj.get(key) is not None:
            return obj[key]
    return default


def _as_str(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    return bool(value)


def _as_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [_as_str(v) for v in value if _as_str(v).strip()]


def _as_level(value: Any, default: str = "medium") -> str:
    value = _as_str(value).strip().lower()
    return value if value in _LEVELS else default


def _dicts(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [v if isinstance(v, dict) else {} for v in value]


def normalize_ledger(raw: Any) -> DecisionLedger:
    """Map ledger-like JSON onto a valid DecisionLedger.

    Accepts snake_case or camelCase keys, a wrapping ``decision_ledger``
    object, and common alternative names (``claim``/``source`` for
    evidence, ``strength`` for weight, ``owner``/``stakeholders`` for
    accountability). Missing fields are filled with neutral defaults.

    Raises:
        ValueError: If ``raw`` is not a JSON object.
    """
    if not isinstance(raw, dict):
        raise ValueError("Ledger input must be a JSON object")
    wrapped = _pick(raw, "decision_ledger", "decisionLedger")
    if isinstance(wrapped, dict):
        raw = wrapped

    decision_raw = raw.get("decision") if isinstance(raw.get("decision"), dict) else {}
    outcome = (
        _as_str(decision_raw.get("outcome")).strip()
        or _as_str(decision_raw.get("title")).strip()
        or _as_str(decision_raw.get("description")).strip()[:500]
        or "Decision outcome not specified"
    )
    reported = _pick(decision_raw, "trace_score", "traceScore")
    if isinstance(reported, bool) or not isinstance(reported, (int, float)):
        reported = None
    decision = {
        "outcome": outcome,
        "confidence": _as_level(decision_raw.get("confidence")),
        "trace_score": max(0.0, min(100.0, float(reported))) if reported is not None else None,
        "score_rationale": _as_str_list(_pick(decision_raw, "score_rationale", "scoreRationale")),
    }

    evidence = []
    for item in _dicts(_pick(raw, "evidence_ledger", "evidenceLedger")):
        used = _as_bool(item.get("used"), default=True)
        evidence.append({
            "evidence": _as_str(_pick(item, "evidence", "claim", "source", default="")).strip(),
            "used": used,
            "weight": _as_level(_pick(item, "weight", "strength")),
            "confidence_impact": _as_float(_pick(item, "confidence_impact", "confidenceImpact")),
            "reason": _as_str(item.get("reason")).strip() or ("Used in decision" if used else "Not used"),
        })

    risks = [
        {
            "risk": _as_str(item.get("risk")).strip() or "Unspecified risk",
            "identified": _as_bool(item.get("identified"), default=True),
            "accepted": _as_bool(item.get("accepted")),
            "severity": _as_str(item.get("severity")).strip() or "medium",
            "accepted_by": _as_str(_pick(item, "accepted_by", "acceptedBy")).strip(),
            "mitigation": _as_str(item.get("mitigation")).strip(),
        }
        for item in _dicts(_pick(raw, "risk_ledger", "riskLedger"))
    ]

    assumptions = [
        {
            "assumption": _as_str(item.get("assumption")).strip() or "Unspecified assumption",
            "explicit": _as_bool(item.get("explicit")),
            "validated": _as_bool(item.get("validated")),
            "owner": _as_str(item.get("owner")).strip(),
            "invalidation_impact": _as_str(_pick(item, "invalidation_impact", "invalidationImpact")).strip(),
        }
        for item in _dicts(_pick(raw, "assumption_ledger", "assumptionLedger"))
    ]

    flow = []
    for index, item in enumerate(_dicts(raw.get("flow"))):
        step = int(_as_float(item.get("step"), default=index + 1))
        actor = _as_str(item.get("actor")).strip()
        flow.append({
            "step": max(step, 0),
            "label": _as_str(item.get("label")).strip() or f"Step {step}",
            "actor": actor if actor in _ACTORS else "Human",
            "ai_influence": _as_bool(_pick(item, "ai_influence", "aiInfluence")),
            "override_applied": _as_bool(_pick(item, "override_applied", "overrideApplied")),
            "rules_applied": _as_str_list(_pick(item, "rules_applied", "rulesApplied")),
            "confidence_delta": _as_float(_pick(item, "confidence_delta", "confidenceDelta")),
        })

    acc_raw = raw.get("accountability") if isinstance(raw.get("accountability"), dict) else {}
    owner = _as_str(acc_raw.get("owner")).strip()
    stakeholders = _as_str_list(acc_raw.get("stakeholders"))
    consulted = _as_str_list(acc_raw.get("consulted")) or stakeholders
    informed = _as_str_list(acc_raw.get("informed"))
    accountability = {
        "responsible": _as_str(acc_raw.get("responsible")).strip() or owner,
        "accountable": _as_str(acc_raw.get("accountable")).strip() or owner,
        "consulted": consulted,
        "informed": informed,
    }

    ledger = DecisionLedger.model_validate({
        "decision": decision,
        "flow": flow,
        "evidence_ledger": evidence,
        "risk_ledger": risks,
        "assumption_ledger": assumptions,
        "accountability": accountability,
    })
    logger.debug(
        "ledger_normalized",
        evidence=len(evidence),
        risks=len(risks),
        assumptions=len(assumptions),
        flow_steps=len(flow),
    )
    return ledger
