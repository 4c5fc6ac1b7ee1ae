"""
Conjoint analysis tests
Several documents analyzed as one corpus, results on the primary record
"""

import pytest

from conftest import SAMPLE_CONTRACT
from legal_analysis.errors import (
    DocumentNotFoundError,
    InvalidAnalysisRequestError,
    StageFailureError,
    UnreadableSourceError,
)
from legal_analysis.pipeline.config import PipelineConfig
from legal_analysis.pipeline.main_pipeline import (
    CONJOINT_REPORT_INSTRUCTION,
    conjoint_instructions,
    merge_document_texts,
)
from legal_analysis.pipeline.models import FULL_RUN_SEQUENCE, AnalysisArtifact, AnalysisStatus, Report

ADDENDUM = "ADDENDUM\n1. Territory is extended to Guatemala."
SIDE_LETTER = "SIDE LETTER\nThe supplier waives the sales target for the first year."


@pytest.fixture
def conjoint_store(store):
    store.add_document("A", SAMPLE_CONTRACT.encode("utf-8"), filename="master.pdf")
    store.add_document("B", ADDENDUM.encode("utf-8"), filename="addendum.pdf")
    store.add_document("C", SIDE_LETTER.encode("utf-8"), filename="side-letter.txt", mime_type="text/plain")
    return store


@pytest.mark.asyncio
async def test_primary_gets_full_artifact_and_others_get_stubs(pipeline, conjoint_store, stages):
    await pipeline.run_conjoint(["A", "B", "C"])

    primary = conjoint_store.artifacts["A"]
    assert primary.translated
    assert primary.checklist is not None
    assert primary.report is not None
    assert primary.original["is_conjoint"] is True
    assert primary.original["documents"] == [
        {"document_id": "A", "filename": "master.pdf"},
        {"document_id": "B", "filename": "addendum.pdf"},
        {"document_id": "C", "filename": "side-letter.txt"},
    ]

    for doc_id in ["B", "C"]:
        stub = conjoint_store.artifacts[doc_id]
        assert stub.is_conjoint_stub
        assert stub.original["primary_document_id"] == "A"
        assert stub.original["text"] == ""
        assert stub.translated is None
        assert stub.checklist is None
        assert stub.report is None
        assert stub.type == primary.type
        record = await conjoint_store.get_status(doc_id)
        assert record.status == AnalysisStatus.COMPLETED

    assert conjoint_store.status_history("A") == list(FULL_RUN_SEQUENCE)
    assert conjoint_store.progress_history("A") == [10, 25, 40, 60, 80, 90, 100]
    assert stages.count("translate_and_structure") == 1
    assert stages.count("synthesize_report") == 1


@pytest.mark.asyncio
async def test_documents_are_extracted_in_order_and_merged(pipeline, conjoint_store, stages):
    await pipeline.run_conjoint(["A", "B", "C"])

    extracted = [payload for name, payload in stages.calls if name == "extract_text"]
    assert extracted == ["master.pdf", "addendum.pdf", "side-letter.txt"]
    assert stages.max_active == 1

    merged = stages.report_requests[0].original
    assert merged.index("DOCUMENT 1 of 3: master.pdf (id: A)") < merged.index("DOCUMENT 2 of 3: addendum.pdf (id: B)")
    assert merged.index("DOCUMENT 2 of 3") < merged.index("DOCUMENT 3 of 3: side-letter.txt (id: C)")
    assert "END OF DOCUMENT 3" in merged
    assert "Territory is extended to Guatemala" in merged
    assert conjoint_store.artifacts["A"].original["text"] == merged


@pytest.mark.asyncio
async def test_cross_document_instruction_is_always_appended(pipeline, conjoint_store, stages):
    await pipeline.run_conjoint(["A", "B"])
    assert stages.report_requests[-1].user_instructions == CONJOINT_REPORT_INSTRUCTION
    assert conjoint_store.artifacts["A"].user_instructions is None

    await pipeline.run_conjoint(["A", "B"], "Focus on territory")
    instructions = stages.report_requests[-1].user_instructions
    assert instructions.startswith("Focus on territory")
    assert instructions.endswith(CONJOINT_REPORT_INSTRUCTION)
    assert conjoint_store.artifacts["A"].user_instructions == "Focus on territory"


@pytest.mark.asyncio
async def test_unreadable_secondary_fails_only_the_primary(pipeline, conjoint_store, stages):
    conjoint_store.evict_raw_bytes("B")

    with pytest.raises(UnreadableSourceError) as exc_info:
        await pipeline.run_conjoint(["A", "B", "C"])

    assert "B" in exc_info.value.message
    primary = await conjoint_store.get_status("A")
    assert primary.status == AnalysisStatus.ERROR
    assert primary.progress == 0
    assert (await conjoint_store.get_status("B")).status == AnalysisStatus.UPLOADED
    assert (await conjoint_store.get_status("C")).status == AnalysisStatus.UPLOADED
    assert conjoint_store.artifacts == {}
    assert pipeline.admission.active == 0


@pytest.mark.asyncio
async def test_stage_failure_leaves_secondaries_untouched(pipeline, conjoint_store, stages):
    stages.fail("synthesize_report", RuntimeError("report model unavailable"))

    with pytest.raises(StageFailureError):
        await pipeline.run_conjoint(["A", "B"])

    assert (await conjoint_store.get_status("A")).error_message == "report model unavailable"
    assert conjoint_store.progress_history("B") == []


@pytest.mark.asyncio
async def test_unknown_document_in_set_fails_before_any_work(pipeline, conjoint_store, stages):
    with pytest.raises(DocumentNotFoundError):
        await pipeline.run_conjoint(["A", "ghost"])

    assert stages.calls == []
    assert (await conjoint_store.get_status("A")).status == AnalysisStatus.ERROR


@pytest.mark.asyncio
async def test_prior_artifacts_of_every_target_are_replaced(pipeline, conjoint_store):
    for doc_id in ["A", "B"]:
        await conjoint_store.upsert_artifact(AnalysisArtifact(
            document_id=doc_id,
            type="nda",
            original={"text": "old"},
            report=Report(text="old", document_type="nda")
        ))

    await pipeline.run_conjoint(["A", "B"])

    assert sorted(conjoint_store.deleted) == ["A", "B"]
    assert conjoint_store.artifacts["B"].is_conjoint_stub
    assert conjoint_store.artifacts["A"].report.text != "old"


@pytest.mark.asyncio
async def test_old_report_is_gone_before_first_checkpoint(pipeline, conjoint_store):
    await conjoint_store.upsert_artifact(AnalysisArtifact(
        document_id="A",
        type="nda",
        original={"text": "old"},
        report=Report(text="old", document_type="nda")
    ))

    await pipeline.run_conjoint(["A", "B"])

    assert conjoint_store.report_visible[0] == (10, False)
    assert not any(visible for progress, visible in conjoint_store.report_visible if progress < 100)
    assert (100, True) in conjoint_store.report_visible


@pytest.mark.asyncio
async def test_duplicate_targets_are_rejected(pipeline, conjoint_store, stages):
    with pytest.raises(InvalidAnalysisRequestError):
        await pipeline.run_conjoint(["A", "B", "A"])
    with pytest.raises(InvalidAnalysisRequestError):
        await pipeline.run_conjoint([])
    assert stages.calls == []


@pytest.mark.asyncio
async def test_single_target_set_is_still_conjoint(pipeline, conjoint_store, stages):
    await pipeline.run_conjoint(["A"])

    assert conjoint_store.artifacts["A"].original["is_conjoint"] is True
    assert stages.report_requests[0].user_instructions == CONJOINT_REPORT_INSTRUCTION


def test_budget_grows_with_document_count():
    config = PipelineConfig(conjoint_timeout_per_document_seconds=180)
    assert config.conjoint_timeout(1) == 180
    assert config.conjoint_timeout(3) == 540


def test_merge_and_instruction_helpers():
    merged = merge_document_texts([
        {"document_id": "A", "filename": "a.pdf", "text": "  first  "},
        {"document_id": "B", "filename": "b.pdf", "text": "second"},
    ])
    assert merged.startswith("===== DOCUMENT 1 of 2: a.pdf (id: A) =====\nfirst\n")
    assert merged.endswith("===== END OF DOCUMENT 2 =====")

    assert conjoint_instructions(None) == CONJOINT_REPORT_INSTRUCTION
    assert conjoint_instructions("Check dates") == f"Check dates\n\n{CONJOINT_REPORT_INSTRUCTION}"
