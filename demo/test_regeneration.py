"""
Report-only regeneration tests
Only the report stage runs; everything else is reused from the stored analysis
"""

import json

import pytest

from conftest import SAMPLE_CONTRACT
from legal_analysis.errors import DocumentNotFoundError, NoPriorAnalysisError
from legal_analysis.pipeline.main_pipeline import CONJOINT_REPORT_INSTRUCTION
from legal_analysis.pipeline.models import (
    REGENERATION_SEQUENCE,
    AnalysisArtifact,
    AnalysisStatus,
    DistributionChecklist,
    Report,
    UnspecializedChecklist,
)
from legal_analysis.pipeline.normalize import (
    checklist_from_value,
    clauses_from_value,
    parse_stored_value,
    plain_text,
)

STORED_CLAUSES = [
    {"clause_number": "1", "title_en": "Territory", "title_es": "Territorio",
     "body_en": "Mexico only.", "body_es": "Solo México."},
    {"clause_number": "2", "title_en": "Term", "title_es": "Plazo",
     "body_en": "Three years.", "body_es": "Tres años."},
]


def stored_as_strings(document_id="doc-1", **overrides):
    """Artifact the way the DynamoDB store hands it back: structured fields as JSON text"""
    fields = dict(
        document_id=document_id,
        type="distribution_contract",
        original=json.dumps({"text": SAMPLE_CONTRACT}),
        translated=json.dumps(STORED_CLAUSES),
        checklist=json.dumps({"type": "distribution_contract", "items": [
            {"key": "salesTargets", "found": "yes", "clauses": ["2"], "risk": "high", "comment": "Hard target"}
        ]}),
        report=Report(text="First report", document_type="distribution_contract"),
        user_instructions="Focus on exclusivity"
    )
    fields.update(overrides)
    return AnalysisArtifact(**fields)


@pytest.mark.asyncio
async def test_only_report_stage_runs(pipeline, store, stages):
    await store.upsert_artifact(stored_as_strings())

    await pipeline.regenerate_report_only("doc-1")

    assert stages.stage_names() == ["synthesize_report"]
    assert store.status_history("doc-1") == list(REGENERATION_SEQUENCE)
    assert store.progress_history("doc-1") == [80, 90, 100]
    assert (await store.get_status("doc-1")).status == AnalysisStatus.COMPLETED


@pytest.mark.asyncio
async def test_stored_strings_are_normalized_for_report_stage(pipeline, store, stages):
    await store.upsert_artifact(stored_as_strings())

    await pipeline.regenerate_report_only("doc-1")

    request = stages.report_requests[0]
    assert request.original == SAMPLE_CONTRACT
    assert [c.clause_number for c in request.translated] == ["1", "2"]
    assert request.translated[0].body_es == "Solo México."
    assert isinstance(request.checklist, DistributionChecklist)
    assert request.checklist.items[0].key == "salesTargets"
    assert request.type == "distribution_contract"


@pytest.mark.asyncio
async def test_everything_but_the_report_is_preserved(pipeline, store):
    before = stored_as_strings()
    await store.upsert_artifact(before)

    await pipeline.regenerate_report_only("doc-1")

    after = store.artifacts["doc-1"]
    assert after.original == before.original
    assert after.translated == before.translated
    assert after.checklist == before.checklist
    assert after.created_at == before.created_at
    assert after.report.text == "Report #1 for distribution_contract"


@pytest.mark.asyncio
async def test_fresh_instructions_replace_stored_ones(pipeline, store, stages):
    await store.upsert_artifact(stored_as_strings())

    await pipeline.regenerate_report_only("doc-1")
    assert stages.report_requests[-1].user_instructions == "Focus on exclusivity"

    await pipeline.regenerate_report_only("doc-1", "Summarize payment terms")
    assert stages.report_requests[-1].user_instructions == "Summarize payment terms"
    assert store.artifacts["doc-1"].user_instructions == "Summarize payment terms"


@pytest.mark.asyncio
async def test_supplied_artifact_is_used_without_loading(pipeline, store, stages):
    await pipeline.regenerate_report_only("doc-1", artifact=stored_as_strings())

    assert stages.count("synthesize_report") == 1
    assert store.artifacts["doc-1"].report is not None


@pytest.mark.asyncio
async def test_missing_checklist_gets_placeholder(pipeline, store, stages):
    await store.upsert_artifact(stored_as_strings(checklist=None, type="nda"))

    await pipeline.regenerate_report_only("doc-1")

    request = stages.report_requests[0]
    assert isinstance(request.checklist, UnspecializedChecklist)
    assert request.checklist.type == "nda"
    assert store.artifacts["doc-1"].checklist is None


@pytest.mark.asyncio
async def test_conjoint_primary_keeps_cross_document_instruction(pipeline, store, stages):
    original = json.dumps({"text": "merged text", "is_conjoint": True, "documents": []})
    await store.upsert_artifact(stored_as_strings(original=original, user_instructions=None))

    await pipeline.regenerate_report_only("doc-1")

    assert stages.report_requests[0].user_instructions == CONJOINT_REPORT_INSTRUCTION
    assert store.artifacts["doc-1"].user_instructions is None


@pytest.mark.asyncio
async def test_without_prior_analysis_fails(pipeline, store, stages):
    with pytest.raises(NoPriorAnalysisError):
        await pipeline.regenerate_report_only("doc-1")

    record = await store.get_status("doc-1")
    assert record.status == AnalysisStatus.ERROR
    assert record.progress == 0
    assert stages.calls == []


@pytest.mark.asyncio
async def test_conjoint_stub_cannot_be_regenerated(pipeline, store, stages):
    await store.upsert_artifact(AnalysisArtifact(
        document_id="doc-1",
        type="distribution_contract",
        original={"text": "", "is_part_of_conjoint_analysis": True, "primary_document_id": "A"}
    ))

    with pytest.raises(NoPriorAnalysisError):
        await pipeline.regenerate_report_only("doc-1")
    assert stages.calls == []


@pytest.mark.asyncio
async def test_deleted_document_is_not_found(pipeline, store, stages):
    await store.upsert_artifact(stored_as_strings())
    del store.documents["doc-1"]

    with pytest.raises(DocumentNotFoundError):
        await pipeline.regenerate_report_only("doc-1")
    assert stages.calls == []


@pytest.mark.asyncio
async def test_regeneration_is_counted(pipeline, store):
    await store.upsert_artifact(stored_as_strings())
    await pipeline.regenerate_report_only("doc-1")

    stats = pipeline.get_statistics()
    assert stats["reports_regenerated"] == 1
    assert stats["runs_completed"] == 1


def test_parse_stored_value():
    assert parse_stored_value('{"a": 1}') == {"a": 1}
    assert parse_stored_value("[1, 2]") == [1, 2]
    assert parse_stored_value("plain text") == "plain text"
    assert parse_stored_value("{not json") == "{not json"
    assert parse_stored_value({"a": 1}) == {"a": 1}
    assert parse_stored_value(None) is None


def test_plain_text_handles_every_shape():
    assert plain_text({"text": "body"}) == "body"
    assert plain_text(json.dumps({"text": "body"})) == "body"
    assert plain_text("just text") == "just text"
    assert plain_text(["one", {"text": "two"}]) == "one\n\ntwo"
    assert plain_text(None) == ""
    assert plain_text({"is_conjoint": True}) == ""


def test_clauses_and_checklist_from_stored_values():
    assert [c.clause_number for c in clauses_from_value(json.dumps(STORED_CLAUSES))] == ["1", "2"]
    assert len(clauses_from_value({"clauses": STORED_CLAUSES})) == 2
    assert clauses_from_value("not clauses") == []
    assert clauses_from_value(None) == []

    checklist = checklist_from_value('{"type": "nda", "note": "No specific analyzer implemented yet"}')
    assert isinstance(checklist, UnspecializedChecklist)
    assert checklist.type == "nda"
    assert checklist_from_value(None) is None
