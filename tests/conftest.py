"""Pytest configuration and fixtures."""

import copy
import json

import pytest

from decision_trace.config.settings import Settings
from decision_trace.contracts import STAGE_CONTRACTS
from decision_trace.errors import ReasoningServiceError
from decision_trace.llm.client import ReasoningRequest, ReasoningResponse
from decision_trace.llm.retry import RetryExecutor, RetryPolicy
from decision_trace.sources import DocumentRef


SAMPLE_DOCUMENT = """
Northwind Logistics - Operations Review Minutes
March 4, 2024

Attendees: Dana Ortiz (VP Operations), Sam Lee (Logistics Manager), Priya Nair (Finance)

Sam reported that on-time delivery with our current regional carrier fell to 81% in Q4,
the second quarter in a row below the 90% target. Customer complaints about late pallets
doubled over the same period.

Priya noted the Contoso Freight bid is 4% more expensive per load but includes a 96%
on-time guarantee with penalty credits. She was not sure the credits would offset
the higher rate.

Dana asked whether Contoso could handle the November peak. Sam believes they can, based
on their work for two other distributors, but nobody has checked their peak capacity.

Decision: Dana approved moving all regional freight to Contoso Freight starting April 1.
Transition risk was accepted without a formal mitigation plan.
"""


@pytest.fixture
def sample_document_text() -> str:
    """Sample meeting minutes containing one explicit decision."""
    return SAMPLE_DOCUMENT


def _stage_payloads() -> dict[int, dict]:
    return {
        1: {
            "has_clear_decision": True,
            "no_decision_message": None,
            "normalized_entities": {
                "people": ["Dana Ortiz", "Sam Lee", "Priya Nair"],
                "organizations": ["Northwind Logistics", "Contoso Freight"],
                "products": [],
                "dates": ["2024-03-04", "2024-04-01"],
            },
            "extracted_claims": [
                {
                    "claim": "Carrier punctuality stayed under target for two straight quarters",
                    "category": "fact",
                    "evidence_anchor": {
                        "excerpt": "on-time delivery with our current regional carrier fell to 81% in Q4",
                        "chunk_index": 0,
                        "line": 7,
                    },
                },
                {
                    "claim": "Peak season capacity of the new carrier was never verified",
                    "category": "assumption",
                },
            ],
            "contradictions": [],
            "missing_info": [
                {
                    "information": "Net cost after penalty credits",
                    "why_needed": "Finance could not confirm the switch pays off",
                    "category": "evidence",
                }
            ],
            "decision_candidates": [
                {
                    "text": "Dana approved moving all regional freight to Contoso Freight starting April 1.",
                    "type": "explicit",
                    "confidence": 0.95,
                }
            ],
            "fragments": [
                {
                    "quote": "fell to 81% in Q4",
                    "classification": "evidence",
                    "context": "Carrier performance review",
                    "linked_candidate_index": 0,
                },
                {
                    "quote": "nobody has checked their peak capacity",
                    "classification": "risk",
                },
            ],
            "extracted_at": "2024-03-05T09:30:00Z",
        },
        2: {
            "has_clear_decision": True,
            "inferred_decision": "Switch regional freight to a new carrier",
            "decision_type": "procurement",
            "decision_owner_candidates": [
                {"name": "Dana Ortiz", "role": "VP Operations", "confidence": 0.9}
            ],
            "decision_criteria": [
                {"criterion": "Delivery punctuality", "inferred_from": "extracted_claims[0]"}
            ],
            "confidence": {"score": 0.8, "reasons": ["Approval is recorded explicitly"]},
            "decision_date": "2024-03-04",
        },
        3: {
            "context_analysis": {
                "business_context": "Service levels slipped while complaints rose",
                "market_conditions": None,
                "organizational_factors": ["Finance had open questions on cost"],
                "external_factors": ["Seasonal peak in November"],
            },
            "stakeholders": [
                {"name": "Dana Ortiz", "role": "VP Operations", "influence": "high"},
                {"name": "Priya Nair", "role": "Finance", "influence": "medium"},
            ],
            "analysis_date": "2024-03-05T10:00:00Z",
        },
        4: {
            "outcome_analysis": {
                "actual_outcomes": {"on_time_rate": "94% after two months"},
                "expected_vs_actual": [
                    {"metric": "On-time rate", "expected": "96%", "actual": "94%", "variance": "-2 points"}
                ],
                "success_indicators": ["Complaints halved"],
                "failure_indicators": ["Guarantee not yet met"],
            },
            "impact_assessment": {"financial_impact": "Freight spend up about 4%"},
            "analysis_date": "2024-06-01T08:00:00+00:00",
        },
        5: {
            "root_causes": [
                {
                    "cause": "Carrier selection skipped a capacity check",
                    "category": "process",
                    "severity": "medium",
                    "evidence": ["extracted_claims[1]"],
                }
            ],
            "contributing_factors": ["Time pressure before April"],
            "analysis_date": "2024-06-02T08:00:00Z",
        },
        6: {
            "lessons_learned": [
                {"lesson": "Verify peak capacity before switching carriers", "category": "process", "priority": "high"}
            ],
            "recommendations": [
                {"recommendation": "Add a capacity audit to carrier onboarding", "priority": "high", "feasibility": "high"}
            ],
            "action_items": [
                {"action": "Run a peak-volume trial", "owner": "Sam Lee", "due_date": "2024-09-30", "status": "pending"}
            ],
            "decision_ledger": {
                "decision": {
                    "outcome": "Regional freight moved to Contoso Freight",
                    "confidence": "high",
                    "trace_score": 92,
                    "score_rationale": ["Strong evidence"],
                },
                "flow": [
                    {
                        "step": 1,
                        "label": "Carrier performance review",
                        "actor": "Human",
                        "ai_influence": False,
                        "override_applied": False,
                    },
                    {
                        "step": 2,
                        "label": "Bid comparison",
                        "actor": "AI",
                        "ai_influence": True,
                        "override_applied": False,
                        "rules_applied": ["lowest_cost_within_sla"],
                        "confidence_delta": 0.1,
                    },
                ],
                "evidence_ledger": [
                    {"evidence": "On-time rate of 81% in Q4", "used": True, "weight": "high"},
                    {"evidence": "Guaranteed 96% on-time rate", "used": True, "weight": "high"},
                ],
                "risk_ledger": [
                    {"risk": "Transition disruption", "accepted": True, "accepted_by": "Dana Ortiz", "mitigation": ""}
                ],
                "assumption_ledger": [
                    {"assumption": "Contoso can absorb peak volume", "validated": True}
                ],
                "accountability": {
                    "responsible": "Sam Lee",
                    "accountable": "Dana Ortiz",
                    "consulted": ["Priya Nair"],
                    "informed": [],
                },
            },
            "completion_date": "2024-06-03T12:00:00Z",
        },
    }


@pytest.fixture
def stage_payloads() -> dict[int, dict]:
    """Valid payloads for every stage, keyed by stage number."""
    return copy.deepcopy(_stage_payloads())


class ScriptedReasoningClient:
    """In-process reasoning service returning scripted responses per stage.

    Each stage has a script of responses (dicts, raw strings or exceptions).
    Items are consumed in order and the last one repeats.
    """

    def __init__(self, scripts: dict[str, list], tokens_per_call: int = 100):
        self.scripts = {stage_id: list(items) for stage_id, items in scripts.items()}
        self.tokens_per_call = tokens_per_call
        self.requests: list[ReasoningRequest] = []
        self.uploads: list[tuple[bytes, str, str]] = []

    async def call(self, request: ReasoningRequest) -> ReasoningResponse:
        self.requests.append(request)
        script = self.scripts.get(request.stage_id)
        if not script:
            raise ReasoningServiceError(f"No scripted response for {request.stage_id}", status_code=400)
        item = script.pop(0) if len(script) > 1 else script[0]
        if isinstance(item, BaseException):
            raise item
        text = item if isinstance(item, str) else json.dumps(item)
        return ReasoningResponse(response_text=text, tokens_used=self.tokens_per_call)

    async def upload_raw_document(self, content: bytes, mime_type: str, filename: str) -> DocumentRef:
        self.uploads.append((content, mime_type, filename))
        return DocumentRef(uri=f"test://{filename}", mime_type=mime_type, filename=filename)

    def calls_for(self, stage_id: str) -> int:
        return sum(1 for r in self.requests if r.stage_id == stage_id)


@pytest.fixture
def make_client(stage_payloads):
    """Factory for scripted clients; overrides replace a stage's script."""

    def _make(overrides: dict[int, list] | None = None, tokens_per_call: int = 100) -> ScriptedReasoningClient:
        scripts = {
            STAGE_CONTRACTS[n].stage_id: [payload] for n, payload in stage_payloads.items()
        }
        for stage_number, script in (overrides or {}).items():
            scripts[STAGE_CONTRACTS[stage_number].stage_id] = script
        return ScriptedReasoningClient(scripts, tokens_per_call=tokens_per_call)

    return _make


@pytest.fixture
def recorded_sleeps() -> list[float]:
    return []


@pytest.fixture
def fast_retry(recorded_sleeps) -> RetryExecutor:
    """Default retry policy with sleeps recorded instead of awaited."""

    async def fake_sleep(seconds: float) -> None:
        recorded_sleeps.append(seconds)

    return RetryExecutor(RetryPolicy(), sleep=fake_sleep)


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(stage_store_dir=tmp_path / "cases", log_level="DEBUG")
