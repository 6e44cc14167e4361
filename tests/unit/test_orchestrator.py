"""Unit tests for the pipeline orchestrator."""

import asyncio

import pytest

from decision_trace.errors import PipelineInputError, ReasoningServiceError
from decision_trace.models.enums import StageStatus
from decision_trace.pipeline.orchestrator import DecisionTracePipeline, run_pipeline
from decision_trace.pipeline.persistence import InMemoryStageStore
from decision_trace.sources import DocumentRef

RAW_SENTENCE = "Customer complaints about late pallets"


@pytest.fixture
def store() -> InMemoryStageStore:
    return InMemoryStageStore()


@pytest.fixture
def make_pipeline(store, fast_retry, test_settings):
    def _make(client, **kwargs) -> DecisionTracePipeline:
        kwargs.setdefault("store", store)
        return DecisionTracePipeline(client, retry_executor=fast_retry, settings=test_settings, **kwargs)

    return _make


def _statuses(run) -> list[str]:
    return [s.status.value for s in run.stages]


class FailingStore(InMemoryStageStore):
    async def save_stage_result(self, case_id, result):
        raise OSError("disk full")


class TestHappyPath:
    """All six stages succeed."""

    def test_all_stages_complete(self, make_client, make_pipeline, sample_document_text):
        client = make_client()
        run = asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        assert run.overall_success
        assert _statuses(run) == ["completed"] * 6
        assert [s.stage_number for s in run.stages] == [1, 2, 3, 4, 5, 6]
        assert run.stages_completed == 6
        assert run.stages_failed == 0
        assert run.stages_skipped == 0
        assert run.total_tokens == 600
        assert run.total_duration_ms == sum(s.duration_ms for s in run.stages)

    def test_ledger_is_scored_deterministically(self, make_client, make_pipeline, sample_document_text):
        run = asyncio.run(make_pipeline(make_client()).run("case-1", raw_text=sample_document_text))

        assert run.ledger is not None
        assert run.ledger.decision.trace_score == 78
        assert len(run.ledger.decision.score_rationale) >= 3
        assert run.stage_payload(6)["decision_ledger"]["decision"]["trace_score"] == 78

        stage6 = run.stage(6)
        assert any("Reported trace score 92" in w for w in stage6.warnings)

    def test_results_are_persisted(self, make_client, make_pipeline, store, sample_document_text):
        asyncio.run(make_pipeline(make_client()).run("case-1", raw_text=sample_document_text))
        for stage_number in range(1, 7):
            assert store.get("case-1", stage_number).status == StageStatus.COMPLETED

    def test_summary_excludes_payloads(self, make_client, make_pipeline, sample_document_text):
        run = asyncio.run(make_pipeline(make_client()).run("case-1", raw_text=sample_document_text))
        summary = run.summary()

        assert summary["case_id"] == "case-1"
        assert summary["overall_success"] is True
        assert summary["trace_score"] == 78
        assert all("data" not in stage for stage in summary["stages"])
        assert run.stage_payload(2)["inferred_decision"] == "Switch regional freight to a new carrier"
        assert run.stage_payload(9) is None

    def test_run_pipeline_helper(self, make_client, fast_retry, test_settings, sample_document_text):
        run = asyncio.run(
            run_pipeline(
                "case-1",
                make_client(),
                raw_text=sample_document_text,
                settings=test_settings,
                retry_executor=fast_retry,
            )
        )
        assert run.overall_success


class TestEvidenceFirewall:
    """Only Stage 1 receives raw input."""

    def test_raw_text_only_in_stage_one_prompt(self, make_client, make_pipeline, sample_document_text):
        client = make_client()
        asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        assert [r.stage_id for r in client.requests][0] == "document_digest"
        assert RAW_SENTENCE in client.requests[0].prompt
        for request in client.requests[1:]:
            assert RAW_SENTENCE not in request.prompt
            assert request.raw_document_ref is None

    def test_echoed_claim_does_not_reach_later_stages(
        self, make_client, make_pipeline, stage_payloads, sample_document_text
    ):
        words = sample_document_text.split()
        echoed = " ".join(words[10:50])
        digest = stage_payloads[1]
        digest["extracted_claims"][0]["claim"] = echoed
        client = make_client({1: [digest]})

        run = asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        assert run.overall_success
        assert "extracted_claims[0].claim" in run.stage(1).warnings[0]
        assert run.stage_payload(1)["extracted_claims"][0]["claim"] == echoed
        first_twenty_one = " ".join(words[10:31])
        for request in client.requests[1:]:
            assert " ".join(words[10:30]) in request.prompt
            assert first_twenty_one not in request.prompt

    def test_document_ref_only_for_stage_one(self, make_client, make_pipeline):
        client = make_client()
        ref = DocumentRef(uri="test://minutes.pdf", mime_type="application/pdf", filename="minutes.pdf")
        run = asyncio.run(make_pipeline(client).run("case-1", document_ref=ref))

        assert run.overall_success
        assert client.requests[0].raw_document_ref == ref
        assert "attached to this request" in client.requests[0].prompt
        assert all(r.raw_document_ref is None for r in client.requests[1:])

    def test_missing_input_rejected(self, make_client, make_pipeline):
        with pytest.raises(PipelineInputError):
            asyncio.run(make_pipeline(make_client()).run("case-1"))


class TestPartialFailure:
    """Later-stage failures are recorded without stopping the run."""

    def test_stage_three_contract_violation(self, make_client, make_pipeline, stage_payloads, sample_document_text):
        bad = dict(stage_payloads[3])
        del bad["stakeholders"]
        client = make_client({3: [bad]})
        run = asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        assert _statuses(run) == ["completed", "completed", "failed", "completed", "completed", "completed"]
        assert run.stages_completed == 5
        assert run.stages_failed == 1
        assert not run.overall_success
        assert run.stage(3).errors == ("stakeholders: Field required",)
        assert run.stage(3).data is None
        assert client.calls_for("root_cause_analysis") == 1

    def test_failed_stage_is_absent_from_later_prompts(self, make_client, make_pipeline, stage_payloads, sample_document_text):
        client = make_client({2: ["not json"]})
        asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        later = [r for r in client.requests if r.stage_id == "context_analysis"][0]
        assert "Switch regional freight to a new carrier" not in later.prompt
        assert "Carrier punctuality stayed under target" in later.prompt

    def test_parse_failure(self, make_client, make_pipeline, sample_document_text):
        client = make_client({2: ["I am unable to answer in JSON."]})
        run = asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        assert run.stage(2).status == StageStatus.FAILED
        assert "not a JSON object" in run.stage(2).errors[0]
        assert "I am unable to answer in JSON." in run.stage(2).errors[0]
        assert run.stages_completed == 5

    def test_transient_error_is_retried(self, make_client, make_pipeline, stage_payloads, recorded_sleeps, sample_document_text):
        client = make_client({4: [ReasoningServiceError("overloaded", 503), stage_payloads[4]]})
        run = asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        assert run.overall_success
        assert client.calls_for("outcome_analysis") == 2
        assert recorded_sleeps == [1.0]

    def test_exhausted_retries_fail_the_stage(self, make_client, make_pipeline, sample_document_text):
        client = make_client({5: [ReasoningServiceError("overloaded", 503)]})
        run = asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        assert run.stage(5).status == StageStatus.FAILED
        assert "overloaded" in run.stage(5).errors[0]
        assert "after 4 attempt(s)" in run.stage(5).errors[0]
        assert client.calls_for("root_cause_analysis") == 4
        assert run.stage(6).status == StageStatus.COMPLETED

    def test_final_stage_failure_leaves_no_ledger(self, make_client, make_pipeline, stage_payloads, sample_document_text):
        bad = dict(stage_payloads[6])
        bad["recommendations"] = []
        run = asyncio.run(make_pipeline(make_client({6: [bad]})).run("case-1", raw_text=sample_document_text))

        assert run.ledger is None
        assert run.stage(6).errors == ("recommendations: List should have at least 1 item after validation, not 0",)

    def test_persistence_failure_becomes_warning(self, make_client, make_pipeline, sample_document_text):
        run = asyncio.run(
            make_pipeline(make_client(), store=FailingStore()).run("case-1", raw_text=sample_document_text)
        )
        assert run.overall_success
        for stage in run.stages:
            assert "Failed to persist stage result: disk full" in stage.warnings


class TestStageOneFailure:
    """Stage 1 failures end the run."""

    def test_unparseable_digest_is_fatal(self, make_client, make_pipeline, sample_document_text):
        client = make_client({1: ["<html>Service unavailable</html>"]})
        run = asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        assert _statuses(run) == ["failed"]
        assert not run.overall_success
        assert run.stages_failed == 1
        assert [r.stage_id for r in client.requests] == ["document_digest"]

    def test_client_error_is_fatal_without_retry(self, make_client, make_pipeline, recorded_sleeps, sample_document_text):
        client = make_client({1: [ReasoningServiceError("invalid api key", 401)]})
        run = asyncio.run(make_pipeline(client).run("case-1", raw_text=sample_document_text))

        assert _statuses(run) == ["failed"]
        assert "invalid api key" in run.stage(1).errors[0]
        assert len(client.requests) == 1
        assert recorded_sleeps == []

    def test_missing_decision_explanation_is_fatal(self, make_client, make_pipeline, stage_payloads, sample_document_text):
        digest = dict(stage_payloads[1])
        digest["has_clear_decision"] = False
        run = asyncio.run(make_pipeline(make_client({1: [digest]})).run("case-1", raw_text=sample_document_text))

        assert _statuses(run) == ["failed"]
        assert run.stage(1).errors[0].startswith("no_decision_message:")


class TestLeakage:
    """Stage 1 output is checked for verbatim echo of the raw input."""

    def test_echoed_field_becomes_warning(self, make_client, make_pipeline, stage_payloads, sample_document_text):
        digest = stage_payloads[1]
        digest["extracted_claims"][1]["claim"] = (
            "Dana approved moving all regional freight to Contoso Freight starting April 1."
        )
        run = asyncio.run(make_pipeline(make_client({1: [digest]})).run("case-1", raw_text=sample_document_text))

        stage1 = run.stage(1)
        assert stage1.status == StageStatus.COMPLETED
        leakage = [w for w in stage1.warnings if w.startswith("Non-echo violation")]
        assert len(leakage) == 1
        assert "extracted_claims[1].claim" in leakage[0]
        assert "evidence_anchor" not in leakage[0]
        assert ">30% overlap" in leakage[0]

    def test_no_leakage_check_without_raw_text(self, make_client, make_pipeline, stage_payloads):
        ref = DocumentRef(uri="test://minutes.txt", mime_type="text/plain", filename="minutes.txt")
        run = asyncio.run(make_pipeline(make_client()).run("case-1", document_ref=ref))
        assert not any(w.startswith("Non-echo violation") for w in run.stage(1).warnings)


class TestResume:
    """Cached validated stages are reused."""

    def test_resume_from_stage(self, make_client, make_pipeline, sample_document_text):
        asyncio.run(make_pipeline(make_client()).run("case-1", raw_text=sample_document_text))

        client = make_client()
        run = asyncio.run(make_pipeline(client).run("case-1", resume_from_stage=4))

        assert _statuses(run) == ["skipped"] * 3 + ["completed"] * 3
        assert run.stages_skipped == 3
        assert run.overall_success
        assert [r.stage_id for r in client.requests] == [
            "outcome_analysis",
            "root_cause_analysis",
            "decision_ledger",
        ]
        assert run.stage(1).warnings == ("Reused validated output from a previous run",)
        assert run.stage_payload(2)["inferred_decision"] == "Switch regional freight to a new carrier"
        assert run.total_tokens == 300

    def test_resume_stops_at_first_incomplete_stage(self, make_client, make_pipeline, sample_document_text):
        asyncio.run(make_pipeline(make_client({3: ["garbage"]})).run("case-1", raw_text=sample_document_text))

        client = make_client()
        run = asyncio.run(make_pipeline(client).run("case-1", resume=True))

        assert _statuses(run) == ["skipped", "skipped"] + ["completed"] * 4
        assert client.calls_for("decision_hypothesis") == 0
        assert client.calls_for("context_analysis") == 1

    def test_resume_of_complete_case_reuses_ledger(self, make_client, make_pipeline, sample_document_text):
        asyncio.run(make_pipeline(make_client()).run("case-1", raw_text=sample_document_text))

        client = make_client()
        run = asyncio.run(make_pipeline(client).run("case-1", resume=True))

        assert run.stages_skipped == 6
        assert client.requests == []
        assert run.ledger.decision.trace_score == 78

    def test_resume_without_cache_needs_input(self, make_client, make_pipeline):
        with pytest.raises(PipelineInputError):
            asyncio.run(make_pipeline(make_client()).run("unknown-case", resume_from_stage=3))

    def test_resume_from_unknown_stage(self, make_client, make_pipeline, sample_document_text):
        with pytest.raises(KeyError):
            asyncio.run(make_pipeline(make_client()).run("case-1", raw_text=sample_document_text, resume_from_stage=9))


class TestConcurrency:
    """Independent cases share no run state."""

    def test_concurrent_cases(self, make_client, make_pipeline, stage_payloads, sample_document_text):
        pipeline = make_pipeline(make_client({4: ["broken"]}))
        other = make_pipeline(make_client())

        async def both():
            return await asyncio.gather(
                pipeline.run("case-a", raw_text=sample_document_text),
                other.run("case-b", raw_text=sample_document_text),
            )

        run_a, run_b = asyncio.run(both())
        assert run_a.case_id == "case-a" and run_b.case_id == "case-b"
        assert run_a.stages_failed == 1
        assert run_b.overall_success
        assert run_a.total_tokens == run_b.total_tokens == 600

    def test_same_pipeline_runs_are_independent(self, make_client, make_pipeline, sample_document_text):
        pipeline = make_pipeline(make_client())

        async def twice():
            return await asyncio.gather(
                pipeline.run("case-a", raw_text=sample_document_text),
                pipeline.run("case-b", raw_text=sample_document_text),
            )

        run_a, run_b = asyncio.run(twice())
        assert len(run_a.stages) == len(run_b.stages) == 6
        assert run_a.total_tokens == run_b.total_tokens == 600
