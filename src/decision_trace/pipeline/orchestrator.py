"""Decision trace pipeline orchestrator.

Runs the six stages strictly in order:

1. Document digest (the only stage that sees raw input)
2. Decision hypothesis
3. Context analysis
4. Outcome analysis
5. Root cause analysis
6. Decision ledger (deterministically scored)

A Stage 1 failure ends the run. A failure in any later stage is recorded on
that stage and the remaining stages are still attempted against whatever
validated state exists.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from decision_trace.config.settings import Settings, get_settings
from decision_trace.contracts import FINAL_STAGE, STAGE_NUMBERS, get_contract, validate, validate_or_raise
from decision_trace.errors import (
    ContractViolationError,
    LeakageWarning,
    PipelineInputError,
    ReasoningServiceError,
)
from decision_trace.llm.client import ReasoningRequest, ReasoningResponse, ReasoningServiceClient
from decision_trace.llm.parsing import parse_or_raise
from decision_trace.llm.retry import RetryExecutor, RetryPolicy
from decision_trace.models.enums import StageStatus
from decision_trace.models.ledger import DecisionLedger
from decision_trace.models.stages import PipelineRun, StageResult
from decision_trace.pipeline.leakage import find_leakage
from decision_trace.pipeline.persistence import InMemoryStageStore, PersistenceClient
from decision_trace.pipeline.prompt_builder import build_prompt
from decision_trace.pipeline.scoring import apply_score, score_ledger
from decision_trace.sources import DocumentRef

logger = structlog.get_logger(__name__)

REUSED_WARNING = "Reused validated output from a previous run"


@dataclass
class _RunState:
    """Accumulator owned by exactly one in-flight run."""

    case_id: str
    results: list[StageResult] = field(default_factory=list)
    outputs: dict[int, dict[str, Any]] = field(default_factory=dict)
    ledger: Optional[DecisionLedger] = None

    def record(self, result: StageResult) -> None:
        self.results.append(result)
        if result.status != StageStatus.FAILED and result.data is not None:
            self.outputs[result.stage_number] = result.data

    def finalize(self) -> PipelineRun:
        failed = sum(1 for r in self.results if r.status == StageStatus.FAILED)
        return PipelineRun(
            case_id=self.case_id,
            stages=tuple(self.results),
            stages_completed=sum(1 for r in self.results if r.status == StageStatus.COMPLETED),
            stages_failed=failed,
            stages_skipped=sum(1 for r in self.results if r.status == StageStatus.SKIPPED),
            total_tokens=sum(r.tokens_used for r in self.results),
            total_duration_ms=sum(r.duration_ms for r in self.results),
            overall_success=failed == 0,
            ledger=self.ledger,
        )


def _elapsed_ms(started: float) -> int:
    return int(round((time.perf_counter() - started) * 1000))


def _error_messages(error: BaseException) -> tuple[str, ...]:
    if isinstance(error, ContractViolationError):
        return tuple(str(fe) for fe in error.field_errors)
    return (str(error) or type(error).__name__,)


class DecisionTracePipeline:
    """Sequential six-stage analysis of one document per run.

    Args:
        client: Reasoning service client.
        store: Persistence collaborator. Defaults to an in-memory store,
            which makes resume work across runs of the same pipeline.
        retry_executor: Executor wrapping every service call. Built from
            settings when omitted.
        settings: Application settings.
    """

    def __init__(
        self,
        client: ReasoningServiceClient,
        store: Optional[PersistenceClient] = None,
        retry_executor: Optional[RetryExecutor] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.client = client
        self.store = store if store is not None else InMemoryStageStore()
        self.retry_executor = retry_executor or RetryExecutor(RetryPolicy.from_settings(self.settings))

    async def run(
        self,
        case_id: str,
        document_ref: Optional[DocumentRef] = None,
        raw_text: Optional[str] = None,
        resume_from_stage: Optional[int] = None,
        resume: bool = False,
    ) -> PipelineRun:
        """Run the pipeline for a case.

        Args:
            case_id: Case identifier, also the persistence key.
            document_ref: Uploaded raw document, forwarded to Stage 1 only.
            raw_text: Raw document text, embedded in the Stage 1 prompt only.
            resume_from_stage: Reuse cached validated stages before this one.
            resume: Reuse every cached validated stage up to the first
                incomplete one.

        Returns:
            The finalized, immutable PipelineRun.

        Raises:
            PipelineInputError: If there is no raw text, no document and no
                cached digest to start from.
            UnknownStageError: If ``resume_from_stage`` is not a stage number.
        """
        if resume_from_stage is not None:
            get_contract(resume_from_stage)
            resume = True

        state = _RunState(case_id=case_id)
        log = logger.bind(case_id=case_id)

        cached = await self._load_cached(case_id, resume_from_stage) if resume else {}

        if 1 not in cached and not raw_text and document_ref is None:
            raise PipelineInputError(
                f"Case {case_id}: provide raw text, a document reference or a cached Stage 1 digest"
            )

        log.info(
            "pipeline_started",
            reused_stages=sorted(cached),
            has_raw_text=bool(raw_text),
            has_document=document_ref is not None,
        )

        for stage_number in STAGE_NUMBERS:
            if stage_number in cached:
                self._reuse(state, stage_number, cached[stage_number])
                continue

            if stage_number == 1:
                result = await self._run_stage(state, 1, raw_text=raw_text, document_ref=document_ref)
            else:
                result = await self._run_stage(state, stage_number)
            state.record(result)

            if stage_number == 1 and result.status == StageStatus.FAILED:
                log.error("pipeline_aborted", reason="stage_1_failed", errors=list(result.errors))
                break

        run = state.finalize()
        log.info(
            "pipeline_complete",
            overall_success=run.overall_success,
            completed=run.stages_completed,
            failed=run.stages_failed,
            skipped=run.stages_skipped,
            total_tokens=run.total_tokens,
            total_duration_ms=run.total_duration_ms,
            trace_score=run.ledger.decision.trace_score if run.ledger else None,
        )
        return run

    # =========================================================================
    # Resume
    # =========================================================================

    async def _load_cached(
        self, case_id: str, resume_from_stage: Optional[int]
    ) -> dict[int, dict[str, Any]]:
        """Load contiguous validated stages starting at Stage 1."""
        limit = resume_from_stage if resume_from_stage is not None else FINAL_STAGE + 1
        cached: dict[int, dict[str, Any]] = {}

        for stage_number in STAGE_NUMBERS:
            if stage_number >= limit:
                break
            try:
                data = await self.store.load_validated_stage(case_id, stage_number)
            except Exception as e:
                logger.warning("cached_stage_unreadable", case_id=case_id, stage=stage_number, error=str(e))
                break
            if data is None:
                break
            if not validate(stage_number, data).ok:
                logger.warning("cached_stage_invalid", case_id=case_id, stage=stage_number)
                break
            cached[stage_number] = data

        return cached

    def _reuse(self, state: _RunState, stage_number: int, data: dict[str, Any]) -> None:
        if stage_number == FINAL_STAGE:
            state.ledger = DecisionLedger.model_validate(data["decision_ledger"])
        state.record(StageResult(
            stage_number=stage_number,
            status=StageStatus.SKIPPED,
            data=data,
            warnings=(REUSED_WARNING,),
        ))
        logger.info("stage_reused", case_id=state.case_id, stage=stage_number)

    # =========================================================================
    # Stage execution
    # =========================================================================

    async def _call_service(self, request: ReasoningRequest) -> ReasoningResponse:
        outcome = await self.retry_executor.execute_safe(lambda: self.client.call(request))
        if not outcome.success:
            error = outcome.error
            if isinstance(error, ReasoningServiceError):
                raise ReasoningServiceError(
                    f"{error} (after {outcome.attempts} attempt(s))", status_code=error.status_code
                ) from error
            raise ReasoningServiceError(
                f"Reasoning service call failed after {outcome.attempts} attempt(s): {error}"
            ) from error
        return outcome.data

    def _check_leakage(self, record: dict[str, Any], raw_text: str) -> list[str]:
        threshold = self.settings.leakage_threshold_percent
        violations = find_leakage(
            record,
            raw_text,
            threshold=threshold,
            min_field_words=self.settings.leakage_min_field_words,
        )
        if not violations:
            return []
        warning = LeakageWarning(1, tuple(v.field_path for v in violations), threshold)
        logger.warning(
            "leakage_warning",
            fields=list(warning.field_paths),
            max_overlap=max(v.overlap_percent for v in violations),
        )
        return [warning.message()]

    def _score(self, state: _RunState, record: dict[str, Any]) -> list[str]:
        ledger = DecisionLedger.model_validate(record["decision_ledger"])
        score = score_ledger(ledger)
        scored = apply_score(ledger, score)
        record["decision_ledger"] = scored.model_dump(mode="json")
        state.ledger = scored

        logger.info("ledger_scored", case_id=state.case_id, trace_score=score.trace_score)
        if score.mismatch:
            logger.warning(
                "trace_score_mismatch",
                reported=score.reported_score,
                deterministic=score.trace_score,
            )
            return [score.mismatch_warning()]
        return []

    async def _run_stage(
        self,
        state: _RunState,
        stage_number: int,
        raw_text: Optional[str] = None,
        document_ref: Optional[DocumentRef] = None,
    ) -> StageResult:
        """Build, call, parse, validate, check and persist one stage."""
        contract = get_contract(stage_number)
        log = logger.bind(case_id=state.case_id, stage=stage_number, stage_id=contract.stage_id)
        log.info("stage_started")

        started = time.perf_counter()
        tokens_used = 0
        warnings: list[str] = []

        try:
            prompt = build_prompt(stage_number, state.outputs, raw_text=raw_text)
            request = ReasoningRequest(
                stage_id=contract.stage_id,
                prompt=prompt,
                raw_document_ref=document_ref if stage_number == 1 else None,
            )
            response = await self._call_service(request)
            tokens_used = response.tokens_used

            parsed = parse_or_raise(response.response_text)
            record = validate_or_raise(stage_number, parsed)

            if stage_number == 1 and raw_text:
                warnings.extend(self._check_leakage(record, raw_text))
            if stage_number == FINAL_STAGE:
                warnings.extend(self._score(state, record))

        except Exception as e:
            log.error("stage_failed", error=str(e), error_type=type(e).__name__)
            result = StageResult(
                stage_number=stage_number,
                status=StageStatus.FAILED,
                errors=_error_messages(e),
                tokens_used=tokens_used,
                duration_ms=_elapsed_ms(started),
            )
        else:
            result = StageResult(
                stage_number=stage_number,
                status=StageStatus.COMPLETED,
                data=record,
                warnings=tuple(warnings),
                tokens_used=tokens_used,
                duration_ms=_elapsed_ms(started),
            )
            log.info(
                "stage_completed",
                tokens_used=tokens_used,
                duration_ms=result.duration_ms,
                warnings=len(warnings),
            )

        return await self._persist(state.case_id, result)

    async def _persist(self, case_id: str, result: StageResult) -> StageResult:
        try:
            await self.store.save_stage_result(case_id, result)
        except Exception as e:
            logger.error(
                "stage_persist_failed",
                case_id=case_id,
                stage=result.stage_number,
                error=str(e),
            )
            return result.model_copy(
                update={"warnings": result.warnings + (f"Failed to persist stage result: {e}",)}
            )
        return result


async def run_pipeline(
    case_id: str,
    client: ReasoningServiceClient,
    *,
    raw_text: Optional[str] = None,
    document_ref: Optional[DocumentRef] = None,
    store: Optional[PersistenceClient] = None,
    resume_from_stage: Optional[int] = None,
    resume: bool = False,
    settings: Optional[Settings] = None,
    retry_executor: Optional[RetryExecutor] = None,
) -> PipelineRun:
    """Run the decision trace pipeline once.

    Convenience wrapper around DecisionTracePipeline for one-off runs.
    """
    pipeline = DecisionTracePipeline(
        client,
        store=store,
        retry_executor=retry_executor,
        settings=settings,
    )
    return await pipeline.run(
        case_id,
        document_ref=document_ref,
        raw_text=raw_text,
        resume_from_stage=resume_from_stage,
        resume=resume,
    )
