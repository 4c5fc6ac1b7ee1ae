"""
Main Pipeline Orchestrator
Drives documents through extraction, translation, classification, domain analysis
and report synthesis, with bounded concurrency and a wall-clock budget per run
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional, Sequence
from dotenv import load_dotenv

# Load environment variables from .env.local file
load_dotenv('.env.local')

from ..core.analysis_store import AnalysisStore
from ..errors import (
    AnalysisError,
    DocumentNotFoundError,
    NoPriorAnalysisError,
    PipelineTimeoutError,
    StageFailureError,
    UnreadableSourceError,
)
from ..utils.data_validator import DataValidator
from ..utils.logger import setup_logger, AuditLogger
from .admission import AdmissionController
from .config import PipelineConfig
from .in_flight import InFlightRegistry
from .models import (
    CONJOINT_STUB_NOTE,
    DEFAULT_DOCUMENT_TYPE,
    AnalysisArtifact,
    AnalysisRun,
    AnalysisStatus,
    ReportRequest,
    UnspecializedChecklist,
)
from .normalize import checklist_from_value, clauses_from_value, parse_stored_value, plain_text
from .stages import (
    STAGE_ANALYZE,
    STAGE_CLASSIFY,
    STAGE_EXTRACT,
    STAGE_REPORT,
    STAGE_TRANSLATE,
    AnalysisStages,
)

# Setup logging
logger = setup_logger(__name__)

CONJOINT_REPORT_INSTRUCTION = (
    "The documents above form a related set and must be analyzed together as one matter. "
    "Check cross-document consistency: point out contradictions or conflicting obligations between "
    "the documents and say which document prevails where they diverge."
)

OUTCOME_COMPLETED = "completed"
OUTCOME_REGENERATED = "regenerated"


def merge_document_texts(sections: Sequence[Dict]) -> str:
    """Concatenate extracted texts with per-document delimiters (index, filename, id)"""

    total = len(sections)
    parts = []
    for index, section in enumerate(sections, 1):
        parts.append(
            f"===== DOCUMENT {index} of {total}: {section['filename']} (id: {section['document_id']}) =====\n"
            f"{section['text'].strip()}\n"
            f"===== END OF DOCUMENT {index} ====="
        )
    return "\n\n".join(parts)


def conjoint_instructions(user_instructions: Optional[str]) -> str:
    """Report guidance for a conjoint run; the set instruction is always appended"""

    if user_instructions:
        return f"{user_instructions}\n\n{CONJOINT_REPORT_INSTRUCTION}"
    return CONJOINT_REPORT_INSTRUCTION


class AnalysisPipeline:
    """
    Orchestrator for legal document analysis

    Every run holds one admission slot for its whole duration and reports
    its outcome only through the store's status and artifact records.
    """

    def __init__(self,
                 store: AnalysisStore,
                 stages: AnalysisStages,
                 config: Optional[PipelineConfig] = None,
                 admission: Optional[AdmissionController] = None,
                 validator: Optional[DataValidator] = None,
                 audit_logger: Optional[AuditLogger] = None):
        """Initialize pipeline with its collaborators"""
        self.config = config or PipelineConfig()
        self.store = store
        self.stages = stages
        self.admission = admission or AdmissionController(
            max_concurrent=self.config.max_concurrent_analyses,
            max_queue_size=self.config.max_queue_size
        )
        self.validator = validator or DataValidator(
            max_instruction_length=self.config.max_instruction_length
        )
        self.audit_logger = audit_logger
        self.in_flight = InFlightRegistry()
        self._tasks = set()

        # Processing statistics
        self.stats = {
            "runs_started": 0,
            "runs_completed": 0,
            "runs_failed": 0,
            "runs_timed_out": 0,
            "reports_regenerated": 0,
            "average_processing_time": 0.0
        }

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def run_single(self, document_id: str, user_instructions: Optional[str] = None) -> None:
        """
        Analyze one document

        Falls back to report-only regeneration when the source bytes are gone
        but an earlier analysis left usable text and clauses.
        """

        run = AnalysisRun(
            targets=self.validator.validate_targets([document_id]),
            user_instructions=self.validator.validate_instructions(user_instructions)
        )
        await self._execute(run, self._run_single_stages, self.config.single_timeout_seconds, "single")

    async def run_conjoint(self, document_ids: Sequence[str], user_instructions: Optional[str] = None) -> None:
        """
        Analyze a set of related documents as one corpus

        The first id is the primary record that receives the full artifact.
        """

        targets = self.validator.validate_targets(document_ids)
        run = AnalysisRun(
            targets=targets,
            user_instructions=self.validator.validate_instructions(user_instructions)
        )
        await self._execute(run, self._run_conjoint_stages, self.config.conjoint_timeout(len(targets)), "conjoint")

    async def regenerate_report_only(self,
                                     document_id: str,
                                     user_instructions: Optional[str] = None,
                                     artifact: Optional[AnalysisArtifact] = None) -> None:
        """Rebuild only the report of an earlier analysis"""

        run = AnalysisRun(
            targets=self.validator.validate_targets([document_id]),
            user_instructions=self.validator.validate_instructions(user_instructions)
        )

        async def regenerate(run: AnalysisRun) -> str:
            await self._regenerate_report(run.primary_target, run.user_instructions, artifact)
            return OUTCOME_REGENERATED

        await self._execute(run, regenerate, self.config.regeneration_timeout_seconds, "regeneration")

    def submit_single(self, document_id: str, user_instructions: Optional[str] = None) -> asyncio.Task:
        """Fire-and-forget run_single; failures are only logged"""
        self.validator.validate_instructions(user_instructions)
        return self._spawn(self.run_single(document_id, user_instructions), f"analysis:{document_id}")

    def submit_conjoint(self, document_ids: Sequence[str], user_instructions: Optional[str] = None) -> asyncio.Task:
        """Fire-and-forget run_conjoint; failures are only logged"""
        targets = self.validator.validate_targets(document_ids)
        self.validator.validate_instructions(user_instructions)
        return self._spawn(self.run_conjoint(targets, user_instructions), f"conjoint:{targets[0]}")

    def submit_regeneration(self,
                            document_id: str,
                            user_instructions: Optional[str] = None,
                            artifact: Optional[AnalysisArtifact] = None) -> asyncio.Task:
        """Fire-and-forget regenerate_report_only; failures are only logged"""
        self.validator.validate_instructions(user_instructions)
        return self._spawn(
            self.regenerate_report_only(document_id, user_instructions, artifact),
            f"regeneration:{document_id}"
        )

    async def shutdown(self, cancel_running: bool = False):
        """
        Stop admitting work

        Queued runs fail with AdmissionCancelledError. Running ones are awaited,
        or cancelled first when cancel_running is set.
        """

        self.admission.shutdown()
        # Queued runs must see AdmissionCancelledError before anything is cancelled
        await asyncio.sleep(0)

        tasks = [task for task in self._tasks if not task.done()]
        if cancel_running:
            for task in tasks:
                task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Pipeline shutdown completed")

    def get_statistics(self) -> Dict:
        """Get pipeline statistics"""
        stats = self.stats.copy()
        stats["admission"] = self.admission.stats()
        stats["in_flight"] = sorted(self.in_flight.running)
        return stats

    # ------------------------------------------------------------------
    # Run lifecycle
    # ------------------------------------------------------------------

    async def _execute(self,
                       run: AnalysisRun,
                       body: Callable[[AnalysisRun], Awaitable[str]],
                       timeout: float,
                       kind: str):
        """Claim ids, hold a slot, enforce the budget and record the outcome"""

        primary = run.primary_target

        with self.in_flight.claim(run.targets):
            slot = await self.admission.acquire()
            start_time = datetime.now()
            self.stats["runs_started"] += 1
            self._audit("analysis_started", {
                "document_id": primary,
                "targets": run.targets,
                "kind": kind
            })
            logger.info(f"[{primary}] Starting {kind} analysis ({len(run.targets)} document(s), budget {timeout:g}s)")

            try:
                outcome = await self._with_budget(body(run), primary, timeout)

            except asyncio.CancelledError:
                await self._mark_failed(run, "Analysis cancelled", start_time)
                raise

            except Exception as e:
                if isinstance(e, PipelineTimeoutError):
                    self.stats["runs_timed_out"] += 1
                message = e.message if isinstance(e, AnalysisError) else (str(e) or e.__class__.__name__)
                await self._mark_failed(run, message, start_time)
                raise

            else:
                duration = (datetime.now() - start_time).total_seconds()
                self._record_success(duration, outcome)
                self._audit("analysis_completed", {
                    "document_id": primary,
                    "targets": run.targets,
                    "kind": kind,
                    "outcome": outcome,
                    "duration_seconds": round(duration, 3)
                })
                logger.info(f"[{primary}] Analysis {outcome} in {duration:.1f}s")

            finally:
                slot.release()

    async def _with_budget(self, coro: Awaitable, document_id: str, timeout: float):
        """
        Stop waiting once the budget is spent

        The run coroutine is cancelled at its current await. Stage work that
        runs in a worker thread is not interrupted and finishes in the
        background.
        """

        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"[{document_id}] TIMEOUT: analysis exceeded {timeout:g}s")
            raise PipelineTimeoutError(document_id, timeout) from None

    async def _mark_failed(self, run: AnalysisRun, message: str, start_time: datetime):
        """Persist the failure on the primary record"""

        duration = (datetime.now() - start_time).total_seconds()
        primary = run.primary_target
        logger.error(f"[{primary}] ERROR after {duration:.1f}s: {message}")
        self.stats["runs_failed"] += 1

        try:
            await self.store.set_error(primary, message)
        except Exception as e:
            logger.error(f"[{primary}] Could not persist error status: {e}")

        self._audit("analysis_failed", {
            "document_id": primary,
            "targets": run.targets,
            "error": message,
            "duration_seconds": round(duration, 3)
        })

    def _record_success(self, duration: float, outcome: str):
        self.stats["runs_completed"] += 1
        if outcome == OUTCOME_REGENERATED:
            self.stats["reports_regenerated"] += 1

        completed = self.stats["runs_completed"]
        self.stats["average_processing_time"] = (
            (self.stats["average_processing_time"] * (completed - 1) + duration) / completed
        )

    def _spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        name = task.get_name()
        if task.cancelled():
            logger.warning(f"Background {name} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Background {name} failed: {error}")

    # ------------------------------------------------------------------
    # Run bodies
    # ------------------------------------------------------------------

    async def _run_single_stages(self, run: AnalysisRun) -> str:
        document_id = run.primary_target

        metadata = await self.store.get_document_metadata(document_id)
        if metadata is None:
            raise DocumentNotFoundError(document_id)

        raw = await self.store.get_raw_bytes(document_id)
        prior = await self.store.get_artifact(document_id)

        if raw is None:
            if self._is_regenerable(prior):
                logger.warning(f"[{document_id}] Source file unavailable, regenerating report from prior analysis")
                await self._regenerate_report(document_id, run.user_instructions, prior)
                return OUTCOME_REGENERATED
            raise UnreadableSourceError(document_id)

        if prior is not None:
            # A full re-run must not mix stale and fresh data
            await self.store.delete_artifact(document_id)
            logger.info(f"[{document_id}] Deleted previous analysis before re-running")

        await self._update_status(document_id, AnalysisStatus.OCR)
        original_text = await self._call_stage(
            STAGE_EXTRACT, document_id,
            self.stages.extract_text, raw, metadata.mime_type, metadata.filename
        )
        logger.info(f"[{document_id}] Extraction completed, {len(original_text)} characters")

        translated, document_type, checklist = await self._translate_classify_analyze(document_id, original_text)

        await self._update_status(document_id, AnalysisStatus.GENERATING_REPORT)
        report = await self._call_stage(
            STAGE_REPORT, document_id,
            self.stages.synthesize_report,
            ReportRequest(
                original=original_text,
                translated=translated,
                type=document_type,
                checklist=checklist,
                user_instructions=run.user_instructions
            )
        )

        await self._update_status(document_id, AnalysisStatus.SAVING)
        await self.store.upsert_artifact(AnalysisArtifact(
            document_id=document_id,
            type=document_type,
            original={"text": original_text},
            translated=translated,
            checklist=checklist,
            report=report,
            user_instructions=run.user_instructions
        ))

        await self._update_status(document_id, AnalysisStatus.COMPLETED)
        return OUTCOME_COMPLETED

    async def _run_conjoint_stages(self, run: AnalysisRun) -> str:
        primary = run.primary_target

        metadata = {}
        for document_id in run.targets:
            meta = await self.store.get_document_metadata(document_id)
            if meta is None:
                raise DocumentNotFoundError(document_id)
            metadata[document_id] = meta

        # Earlier results of every target go before the first checkpoint
        for document_id in run.targets:
            if await self.store.get_artifact(document_id) is not None:
                await self.store.delete_artifact(document_id)
                logger.info(f"[{primary}] Deleted previous analysis of {document_id}")

        await self._update_status(primary, AnalysisStatus.OCR)

        # One document at a time to bound memory
        sections = []
        for index, document_id in enumerate(run.targets, 1):
            raw = await self.store.get_raw_bytes(document_id)
            if raw is None:
                raise UnreadableSourceError(document_id)

            meta = metadata[document_id]
            text = await self._call_stage(
                STAGE_EXTRACT, primary,
                self.stages.extract_text, raw, meta.mime_type, meta.filename
            )
            logger.info(
                f"[{primary}] Extracted document {index}/{len(run.targets)} ({document_id}), {len(text)} characters"
            )
            sections.append({"document_id": document_id, "filename": meta.filename, "text": text})

        merged_text = merge_document_texts(sections)

        translated, document_type, checklist = await self._translate_classify_analyze(primary, merged_text)

        await self._update_status(primary, AnalysisStatus.GENERATING_REPORT)
        report = await self._call_stage(
            STAGE_REPORT, primary,
            self.stages.synthesize_report,
            ReportRequest(
                original=merged_text,
                translated=translated,
                type=document_type,
                checklist=checklist,
                user_instructions=conjoint_instructions(run.user_instructions)
            )
        )

        await self._update_status(primary, AnalysisStatus.SAVING)
        await self.store.upsert_artifact(AnalysisArtifact(
            document_id=primary,
            type=document_type,
            original={
                "text": merged_text,
                "is_conjoint": True,
                "documents": [
                    {"document_id": s["document_id"], "filename": s["filename"]} for s in sections
                ]
            },
            translated=translated,
            checklist=checklist,
            report=report,
            user_instructions=run.user_instructions
        ))

        for document_id in run.targets[1:]:
            await self.store.upsert_artifact(AnalysisArtifact(
                document_id=document_id,
                type=document_type,
                original={
                    "text": "",
                    "is_part_of_conjoint_analysis": True,
                    "primary_document_id": primary,
                    "note": CONJOINT_STUB_NOTE
                },
                translated=None,
                checklist=None,
                report=None,
                user_instructions=run.user_instructions
            ))
            await self._update_status(document_id, AnalysisStatus.COMPLETED)

        await self._update_status(primary, AnalysisStatus.COMPLETED)
        return OUTCOME_COMPLETED

    async def _translate_classify_analyze(self, document_id: str, text: str):
        """Translate, classify and run the domain analyzer; shared by single and conjoint runs"""

        await self._update_status(document_id, AnalysisStatus.TRANSLATING)
        translated = await self._call_stage(
            STAGE_TRANSLATE, document_id, self.stages.translate_and_structure, text
        )
        validation = self.validator.validate_clauses(translated)
        for warning in validation["warnings"] + validation["errors"]:
            logger.warning(f"[{document_id}] {warning}")
        logger.info(f"[{document_id}] Translation completed, {len(translated)} clauses")

        await self._update_status(document_id, AnalysisStatus.CLASSIFYING)
        classification = await self._call_stage(
            STAGE_CLASSIFY, document_id, self.stages.classify, translated
        )
        document_type = classification.type or DEFAULT_DOCUMENT_TYPE
        logger.info(f"[{document_id}] Classification: {document_type}")

        await self._update_status(document_id, AnalysisStatus.ANALYZING)
        checklist = await self._call_stage(
            STAGE_ANALYZE, document_id, self.stages.domain_analyze, document_type, translated
        )

        return translated, document_type, checklist

    async def _regenerate_report(self,
                                 document_id: str,
                                 user_instructions: Optional[str],
                                 artifact: Optional[AnalysisArtifact]):
        """Report-only path; runs inside a slot the caller already holds"""

        if artifact is None:
            artifact = await self.store.get_artifact(document_id)
        if artifact is None:
            raise NoPriorAnalysisError(document_id)

        original = parse_stored_value(artifact.original)
        translated = clauses_from_value(artifact.translated)
        original_text = plain_text(original)
        if not translated or not original_text:
            raise NoPriorAnalysisError(document_id)

        if await self.store.get_document_metadata(document_id) is None:
            raise DocumentNotFoundError(document_id)

        document_type = artifact.type or DEFAULT_DOCUMENT_TYPE
        checklist = checklist_from_value(artifact.checklist, document_type) or UnspecializedChecklist(type=document_type)
        instructions = user_instructions or artifact.user_instructions

        report_instructions = instructions
        if isinstance(original, dict) and original.get("is_conjoint"):
            report_instructions = conjoint_instructions(instructions)

        await self._update_status(document_id, AnalysisStatus.GENERATING_REPORT)
        report = await self._call_stage(
            STAGE_REPORT, document_id,
            self.stages.synthesize_report,
            ReportRequest(
                original=original_text,
                translated=translated,
                type=document_type,
                checklist=checklist,
                user_instructions=report_instructions
            )
        )

        await self._update_status(document_id, AnalysisStatus.SAVING)
        await self.store.upsert_artifact(AnalysisArtifact(
            document_id=document_id,
            type=artifact.type,
            original=artifact.original,
            translated=artifact.translated,
            checklist=artifact.checklist,
            report=report,
            user_instructions=instructions,
            created_at=artifact.created_at
        ))

        await self._update_status(document_id, AnalysisStatus.COMPLETED)
        self._audit("report_regenerated", {"document_id": document_id})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_regenerable(artifact: Optional[AnalysisArtifact]) -> bool:
        if artifact is None:
            return False
        return bool(plain_text(artifact.original)) and bool(clauses_from_value(artifact.translated))

    async def _call_stage(self, stage: str, document_id: str, func: Callable, *args):
        """Await one stage; any exception becomes a StageFailureError with the stage's message"""

        started = datetime.now()
        try:
            result = await func(*args)
        except AnalysisError:
            raise
        except Exception as e:
            raise StageFailureError(stage, str(e) or e.__class__.__name__, document_id) from e

        if result is None:
            raise StageFailureError(stage, f"Stage {stage} returned no result", document_id)

        elapsed = (datetime.now() - started).total_seconds()
        logger.debug(f"[{document_id}] Stage {stage} finished in {elapsed:.1f}s")
        return result

    async def _update_status(self, document_id: str, status: AnalysisStatus):
        """Persist a checkpoint; a failed write is logged and the run goes on"""

        logger.info(f"[{document_id}] {status.value} ({status.progress}%)")
        try:
            await self.store.set_status(document_id, status, status.progress)
        except Exception as e:
            logger.warning(f"[{document_id}] Could not persist status {status.value}: {e}")

    def _audit(self, event: str, data: Dict):
        if not self.audit_logger:
            return
        try:
            self.audit_logger.log(event, data)
        except OSError as e:
            logger.error(f"Audit log write failed: {e}")


# ----------------------------------------------------------------------
# Command line
# ----------------------------------------------------------------------

def build_default_pipeline(config: Optional[PipelineConfig] = None) -> AnalysisPipeline:
    """Pipeline wired to DynamoDB/S3 and Bedrock-backed stages"""

    from ..core import build_bedrock_stages
    from ..core.dynamo_store import DynamoAnalysisStore

    config = config or PipelineConfig.from_env()
    return AnalysisPipeline(
        store=DynamoAnalysisStore.from_config(config),
        stages=build_bedrock_stages(config),
        config=config,
        audit_logger=AuditLogger()
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="legal-analysis", description="Legal document analysis pipeline")
    commands = parser.add_subparsers(dest="command", required=True)

    analyze = commands.add_parser("analyze", help="Analyze one document, or several as a conjoint set")
    analyze.add_argument("document_ids", nargs="+")
    analyze.add_argument("--instructions", default=None, help="Guidance passed to the report stage")

    regenerate = commands.add_parser("regenerate", help="Rebuild only the report of an earlier analysis")
    regenerate.add_argument("document_id")
    regenerate.add_argument("--instructions", default=None)

    status = commands.add_parser("status", help="Show the status and artifact of a document")
    status.add_argument("document_id")

    return parser


async def _run_command(pipeline: AnalysisPipeline, args: argparse.Namespace) -> Dict:
    if args.command == "analyze":
        if len(args.document_ids) == 1:
            await pipeline.run_single(args.document_ids[0], args.instructions)
        else:
            await pipeline.run_conjoint(args.document_ids, args.instructions)
        document_id = args.document_ids[0]
    elif args.command == "regenerate":
        await pipeline.regenerate_report_only(args.document_id, args.instructions)
        document_id = args.document_id
    else:
        document_id = args.document_id

    record = await pipeline.store.get_status(document_id)
    artifact = await pipeline.store.get_artifact(document_id)
    return {
        "document_id": document_id,
        "status": record.status.value if record else None,
        "progress": record.progress if record else None,
        "error_message": record.error_message if record else None,
        "analysis": artifact.to_dict() if artifact else None
    }


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point"""

    args = _build_parser().parse_args(argv)
    pipeline = build_default_pipeline()

    try:
        result = asyncio.run(_run_command(pipeline, args))
    except (AnalysisError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
