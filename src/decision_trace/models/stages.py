"""Run and stage result models.

A PipelineRun is materialized once, after every attempted stage has
finished, and is immutable from then on. StageResults are likewise frozen
the moment the orchestrator records them.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from decision_trace.models.enums import StageStatus
from decision_trace.models.ledger import DecisionLedger


class StageResult(BaseModel):
    """Outcome of a single pipeline stage."""

    model_config = ConfigDict(frozen=True)

    stage_number: int = Field(ge=1, description="1-based stage number")
    status: StageStatus
    data: Optional[dict[str, Any]] = Field(
        None, description="Validated structured record (absent on failure)"
    )
    errors: tuple[str, ...] = Field(default_factory=tuple)
    warnings: tuple[str, ...] = Field(default_factory=tuple)
    tokens_used: int = Field(default=0, ge=0)
    duration_ms: int = Field(default=0, ge=0)

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.COMPLETED


class PipelineRun(BaseModel):
    """Immutable record of one analysis run for a case."""

    model_config = ConfigDict(frozen=True)

    case_id: str
    stages: tuple[StageResult, ...] = Field(default_factory=tuple)
    stages_completed: int = 0
    stages_failed: int = 0
    stages_skipped: int = 0
    total_tokens: int = 0
    total_duration_ms: int = 0
    overall_success: bool = False
    ledger: Optional[DecisionLedger] = Field(
        None, description="Scored decision ledger from the final stage"
    )

    @model_validator(mode="after")
    def _check_invariants(self) -> "PipelineRun":
        numbers = [s.stage_number for s in self.stages]
        if numbers != sorted(set(numbers)):
            raise ValueError(f"Stages must be unique and ascending, got {numbers}")
        if self.overall_success != (self.stages_failed == 0):
            raise ValueError("overall_success must equal (stages_failed == 0)")
        return self

    def stage(self, stage_number: int) -> Optional[StageResult]:
        for result in self.stages:
            if result.stage_number == stage_number:
                return result
        return None

    def stage_payload(self, stage_number: int) -> Optional[dict[str, Any]]:
        """Retrieve the validated record of a stage (None if absent)."""
        result = self.stage(stage_number)
        return result.data if result else None

    def summary(self) -> dict[str, Any]:
        """Caller-facing summary. Never includes stage payloads."""
        summary: dict[str, Any] = {
            "case_id": self.case_id,
            "overall_success": self.overall_success,
            "stages_completed": self.stages_completed,
            "stages_failed": self.stages_failed,
            "stages_skipped": self.stages_skipped,
            "total_tokens": self.total_tokens,
            "total_duration_ms": self.total_duration_ms,
            "stages": [
                {
                    "stage_number": s.stage_number,
                    "status": s.status.value,
                    "errors": list(s.errors),
                    "warnings": list(s.warnings),
                    "tokens_used": s.tokens_used,
                    "duration_ms": s.duration_ms,
                }
                for s in self.stages
            ],
        }
        if self.ledger is not None:
            summary["trace_score"] = self.ledger.decision.trace_score
            summary["score_rationale"] = list(self.ledger.decision.score_rationale)
        return summary
