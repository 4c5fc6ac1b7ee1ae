"""
Legal Analysis Pipeline - Demo Tutorial
Walks through single, conjoint and report-only runs against an in-memory store
"""

import asyncio
import json
import sys
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env.local file
load_dotenv('.env.local')

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from legal_analysis.core.analysis_store import InMemoryAnalysisStore
from legal_analysis.pipeline import AnalysisPipeline, AnalysisStages, PipelineConfig
from legal_analysis.pipeline.models import (
    ChecklistItem,
    Classification,
    DistributionChecklist,
    Report,
    TranslatedClause,
    UnspecializedChecklist,
)
from legal_analysis.utils.logger import setup_logger, AuditLogger

# Setup logging
logger = setup_logger(__name__)
audit_logger = AuditLogger()

MASTER_AGREEMENT = """EXCLUSIVE DISTRIBUTION AGREEMENT
1. Appointment. Supplier appoints Distributor as exclusive distributor of the Products.
2. Territory. Distributor shall not actively sell outside the Republic of Mexico.
3. Sales Targets. Distributor shall purchase at least 10,000 units per contract year.
4. Termination. Either party may terminate without cause on 30 days' notice.
5. Governing Law. This Agreement is governed by the laws of the State of New York."""

ADDENDUM = """ADDENDUM No. 1
1. Territory. The Territory is extended to Guatemala and Honduras.
2. Governing Law. Disputes shall be settled by arbitration in Mexico City."""


def print_section(title: str):
    """Print formatted section header"""
    print("\n" + "="*60)
    print(f"  {title}")
    print("="*60 + "\n")


class DemoStages:
    """Canned stage outputs with a short delay so progress is observable"""

    def __init__(self, delay: float = 0.2):
        self.delay = delay
        self.reports = 0

    async def extract_text(self, raw: bytes, mime_type: str, filename: str) -> str:
        await asyncio.sleep(self.delay)
        return raw.decode("utf-8")

    async def translate_and_structure(self, text: str):
        await asyncio.sleep(self.delay)
        clauses = []
        for line in text.splitlines():
            number, _, rest = line.partition(". ")
            if number.isdigit():
                title, _, body = rest.partition(". ")
                clauses.append(TranslatedClause(clause_number=number, title_en=title, body_en=body,
                                                title_es=title, body_es=body))
        return clauses

    async def classify(self, clauses):
        await asyncio.sleep(self.delay)
        return Classification(type="distribution_contract", confidence="high")

    async def domain_analyze(self, document_type: str, clauses):
        await asyncio.sleep(self.delay)
        if document_type != "distribution_contract":
            return UnspecializedChecklist(type=document_type)
        return DistributionChecklist(items=[
            ChecklistItem(key="salesTargets", found="yes", clauses=["3"], risk="high",
                          comment="Annual minimum purchase with no shortfall cure period"),
            ChecklistItem(key="terminationWithoutCause", found="yes", clauses=["4"], risk="high",
                          comment="30 days' notice is short for the Distributor's investment"),
        ])

    async def synthesize_report(self, request):
        await asyncio.sleep(self.delay)
        self.reports += 1
        lines = [f"Report v{self.reports}: {request.type}, {len(request.translated)} clauses reviewed"]
        if request.user_instructions:
            lines.append(f"Guidance: {request.user_instructions[:80]}")
        return Report(text="\n".join(lines), document_type=request.type,
                      user_instructions=request.user_instructions)

    def as_stages(self) -> AnalysisStages:
        return AnalysisStages(
            extract_text=self.extract_text,
            translate_and_structure=self.translate_and_structure,
            classify=self.classify,
            domain_analyze=self.domain_analyze,
            synthesize_report=self.synthesize_report
        )


def build_demo_pipeline(max_concurrent: int = 3):
    store = InMemoryAnalysisStore()
    store.add_document("master", MASTER_AGREEMENT.encode("utf-8"), filename="master_agreement.pdf")
    store.add_document("addendum", ADDENDUM.encode("utf-8"), filename="addendum_1.pdf")
    pipeline = AnalysisPipeline(
        store=store,
        stages=DemoStages().as_stages(),
        config=PipelineConfig(max_concurrent_analyses=max_concurrent),
        audit_logger=audit_logger
    )
    return pipeline, store


async def poll_until_done(store: InMemoryAnalysisStore, document_id: str):
    """Poll the status record the way a client would"""
    last = None
    while True:
        record = await store.get_status(document_id)
        if (record.status, record.progress) != last:
            print(f"  {document_id}: {record.status.value:<18} {record.progress:>3}%")
            last = (record.status, record.progress)
        if record.status.value in ("completed", "error"):
            return record
        await asyncio.sleep(0.05)


async def demo_single_analysis():
    """Demonstrate a single-document analysis"""

    print_section("DEMO 1: Single Document Analysis")

    pipeline, store = build_demo_pipeline()

    task = pipeline.submit_single("master", "Focus on the Distributor's exit options")
    await poll_until_done(store, "master")
    await task

    artifact = await store.get_artifact("master")
    print(f"\nDocument type: {artifact.type}")
    print(f"Clauses: {len(artifact.translated)}")
    print("\n--- Checklist ---")
    for item in artifact.checklist.items:
        print(f"• {item.key}: {item.found} (risk: {item.risk})")
    print("\n--- Report ---")
    print(artifact.report.text)


async def demo_conjoint_analysis():
    """Demonstrate analyzing a master agreement together with its addendum"""

    print_section("DEMO 2: Conjoint Analysis")

    pipeline, store = build_demo_pipeline()

    await pipeline.run_conjoint(["master", "addendum"])

    primary = await store.get_artifact("master")
    secondary = await store.get_artifact("addendum")
    print("Documents analyzed together:")
    for doc in primary.original["documents"]:
        print(f"  - {doc['filename']} ({doc['document_id']})")
    print(f"\nPrimary report:\n{primary.report.text}")
    print(f"\nSecondary record points to: {secondary.original['primary_document_id']}")
    print(f"Secondary status: {(await store.get_status('addendum')).status.value}")


async def demo_report_regeneration():
    """Demonstrate rebuilding only the report"""

    print_section("DEMO 3: Report Regeneration")

    pipeline, store = build_demo_pipeline()
    await pipeline.run_single("master")
    print(f"First report:\n{(await store.get_artifact('master')).report.text}")

    # The upload is gone but the earlier analysis is still usable
    store.evict_raw_bytes("master")
    await pipeline.run_single("master", "Rewrite for a non-lawyer executive audience")

    print(f"\nRegenerated report:\n{(await store.get_artifact('master')).report.text}")
    print(f"Status checkpoints of the regeneration: {store.progress_history('master')[-3:]}")


async def demo_bounded_concurrency():
    """Demonstrate admission control with more runs than slots"""

    print_section("DEMO 4: Bounded Concurrency")

    pipeline, store = build_demo_pipeline(max_concurrent=2)
    for idx in range(3, 7):
        store.add_document(f"contract-{idx}", MASTER_AGREEMENT.encode("utf-8"), filename=f"contract_{idx}.pdf")

    doc_ids = ["master"] + [f"contract-{idx}" for idx in range(3, 7)]
    tasks = [pipeline.submit_single(doc_id) for doc_id in doc_ids]

    await asyncio.sleep(0.1)
    print("While running:")
    print(json.dumps(pipeline.get_statistics()["admission"], indent=2))

    await asyncio.gather(*tasks)
    print("\nAfter completion:")
    print(json.dumps(pipeline.get_statistics(), indent=2))


async def main():
    """Run all demos"""

    print("\n" + "="*60)
    print("  LEGAL ANALYSIS PIPELINE")
    print("  Demo Tutorial")
    print("="*60)

    demos = [
        ("Single Document Analysis", demo_single_analysis),
        ("Conjoint Analysis", demo_conjoint_analysis),
        ("Report Regeneration", demo_report_regeneration),
        ("Bounded Concurrency", demo_bounded_concurrency)
    ]

    print("\nAvailable Demos:")
    for idx, (name, _) in enumerate(demos, 1):
        print(f"  {idx}. {name}")

    print("\nNote: stages are simulated; the Bedrock-backed stages need")
    print("AWS credentials (see README).")

    run_all = input("\nRun all demos? (y/n): ").lower() == 'y'

    if run_all:
        for name, demo_func in demos:
            try:
                await demo_func()
            except Exception as e:
                print(f"\nError in {name}: {e}")
                print("Continuing with next demo...")
    else:
        while True:
            choice = input(f"\nEnter demo number (1-{len(demos)}) or 'q' to quit: ")

            if choice.lower() == 'q':
                break

            try:
                idx = int(choice) - 1
                if 0 <= idx < len(demos):
                    name, demo_func = demos[idx]
                    await demo_func()
                else:
                    print("Invalid choice")
            except ValueError:
                print("Invalid choice")

    print("\n" + "="*60)
    print("  Demo completed successfully!")
    print("="*60)


if __name__ == "__main__":
    # Run the demo
    asyncio.run(main())
