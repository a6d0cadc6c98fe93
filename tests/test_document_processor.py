"""Tests for the document processing pipeline."""

from __future__ import annotations

import asyncio
import errno
import threading
from pathlib import Path
from typing import Any, Callable, Optional

import pytest
from conftest import FakeAI, FakeExtractor

from parafile.classification import CategorizationGateway
from parafile.config import ParafileConfig
from parafile.extraction import ExtractionError
from parafile.feedback import FeedbackStore, FeedbackSubmission, RelevantFeedback
from parafile.organization import FileOrganizer
from parafile.processing import (
    STAGE_POLICIES,
    DocumentProcessor,
    FallbackPolicy,
    FileEvent,
    ProcessingResult,
    ProcessingStep,
    classify_failure,
)

INVOICE_CONFIG: dict[str, Any] = {
    "categories": [
        {
            "name": "Invoices",
            "description": "Bills from vendors",
            "naming_pattern": "Invoice_{date}_{vendor}",
        },
        {"name": "General", "description": "Everything else", "naming_pattern": "{original_name}"},
    ],
    "variables": [
        {"name": "date", "description": "Invoice date", "formatting": "none"},
        {"name": "vendor", "description": "Vendor name", "formatting": "pascal"},
    ],
}


class StaticLog:
    def __init__(self, processed: set[str] | None = None, *, error: bool = False) -> None:
        self.processed = processed or set()
        self.error = error

    def is_file_already_processed(self, filename: str) -> bool:
        if self.error:
            raise OSError("log unavailable")
        return filename in self.processed


def _drop(config: ParafileConfig, name: str = "scan.pdf", content: str = "%PDF") -> Path:
    inbox = Path(config.watched_folder)
    inbox.mkdir(parents=True, exist_ok=True)
    path = inbox / name
    path.write_text(content, encoding="utf-8")
    return path


def _processor(
    config: ParafileConfig,
    *,
    ai: Optional[FakeAI] = None,
    extractor: Optional[FakeExtractor] = None,
    log: Any = None,
    feedback: Any = None,
    organizer: Optional[FileOrganizer] = None,
) -> DocumentProcessor:
    return DocumentProcessor(
        config,
        extractor=extractor or FakeExtractor(),  # type: ignore[arg-type]
        ai=CategorizationGateway(ai or FakeAI()),
        organizer=organizer or FileOrganizer(),
        log=log,
        feedback=feedback,
    )


def _run(processor: DocumentProcessor, target: Any) -> ProcessingResult:
    return asyncio.run(processor.process_document(target))


def test_categorizes_names_and_moves_document(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)
    ai = FakeAI(category="Invoices", values={"date": "2024-01-15", "vendor": "acme corp"})

    result = _run(_processor(config, ai=ai), source)

    expected = Path(config.watched_folder) / "Invoices" / "Invoice_2024-01-15_AcmeCorp.pdf"
    assert result.success, result.error
    assert result.category == "Invoices"
    assert result.new_name == expected.name
    assert result.new_path == str(expected)
    assert result.confidence == 90
    assert result.processing_step is None
    assert result.processing_time >= 0
    assert expected.exists() and not source.exists()


def test_accepts_explicit_file_events(make_config: Callable[..., ParafileConfig]) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config, "letter.docx")
    extractor = FakeExtractor()

    event = FileEvent(path=str(source), type="docx", kind="add")
    result = _run(_processor(config, extractor=extractor), event)

    assert result.success
    assert extractor.calls == [(source, "docx")]


def test_token_usage_is_aggregated(make_config: Callable[..., ParafileConfig]) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)
    ai = FakeAI(category="Invoices", values={"date": "2024", "vendor": "Acme"}, usage_tokens=10)

    result = _run(_processor(config, ai=ai), source)

    assert result.token_usage.total_tokens == 30
    assert result.token_usage.total_cost == pytest.approx(0.003)
    operations = sorted(record.operation for record in result.token_usage.operations)
    assert operations == ["categorization", "variable:date", "variable:vendor"]


def test_ai_failure_falls_back_to_general_and_still_succeeds(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config, "contract.pdf")

    result = _run(_processor(config, ai=FakeAI(fail=True)), source)

    assert result.success
    assert result.category == "General"
    assert result.reasoning == "fallback"
    assert result.confidence == 0
    assert result.new_path == str(Path(config.watched_folder) / "General" / "contract.pdf")


def test_no_ai_configured_behaves_like_failure(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)
    processor = DocumentProcessor(
        config,
        extractor=FakeExtractor(),  # type: ignore[arg-type]
        ai=CategorizationGateway(None),
        organizer=FileOrganizer(),
    )

    result = _run(processor, source)

    assert result.success
    assert result.category == "General"


def test_unknown_category_resolves_to_general(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)

    result = _run(_processor(config, ai=FakeAI(category="Recipes")), source)

    assert result.success
    assert result.category == "General"


def test_missing_general_category_is_fatal(make_config: Callable[..., ParafileConfig]) -> None:
    config = ParafileConfig(
        watched_folder=make_config().watched_folder,
        categories=[INVOICE_CONFIG["categories"][0]],
        variables=INVOICE_CONFIG["variables"],
    )
    source = _drop(config)

    result = _run(_processor(config, ai=FakeAI(category="Recipes")), source)

    assert not result.success
    assert result.processing_step is ProcessingStep.AI_CATEGORIZATION
    assert "General" in (result.error or "")
    assert source.exists()


def test_unresolved_variables_use_visible_placeholder(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)
    ai = FakeAI(category="Invoices", values={"date": "2024-01-15", "vendor": None})

    result = _run(_processor(config, ai=ai), source)

    assert result.success
    assert result.new_name == "Invoice_2024-01-15_<VENDOR>.pdf"


def test_variable_values_are_sanitized(make_config: Callable[..., ParafileConfig]) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)
    ai = FakeAI(category="Invoices", values={"date": "2024/01/15", "vendor": "acme"})

    result = _run(_processor(config, ai=ai), source)

    assert result.new_name == "Invoice_2024_01_15_Acme.pdf"


def test_variable_extraction_failure_uses_placeholders(
    make_config: Callable[..., ParafileConfig],
) -> None:
    class CategorizeOnly(FakeAI):
        def extract_variable(self, *args: Any, **kwargs: Any) -> Any:
            raise RuntimeError("timeout")

    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)

    result = _run(_processor(config, ai=CategorizeOnly(category="Invoices")), source)

    assert result.success
    assert result.new_name == "Invoice_<DATE>_<VENDOR>.pdf"


def test_original_name_only_pattern_applies_formatting(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(
        categories=[
            {"name": "General", "description": "All", "naming_pattern": "scan_{original_name}"}
        ],
        variables=[
            {"name": "original_name", "description": "Original", "formatting": "snake"}
        ],
    )
    source = _drop(config, "Quarterly Report.pdf")
    ai = FakeAI()

    result = _run(_processor(config, ai=ai), source)

    assert result.new_name == "scan_quarterly_report.pdf"
    assert [call for call in ai.calls if call[0] == "extract_variable"] == []


def test_already_processed_file_keeps_its_name(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config, "Invoice_2024_Acme.pdf")
    ai = FakeAI(category="Invoices", values={"date": "2030", "vendor": "Other"})

    result = _run(_processor(config, ai=ai, log=StaticLog({"Invoice_2024_Acme.pdf"})), source)

    assert result.success
    assert result.skipped_rename
    assert not result.skipped_move
    assert result.category == "Invoices"
    assert result.new_name == "Invoice_2024_Acme.pdf"
    assert [call[0] for call in ai.calls] == ["categorize"]


def test_log_errors_do_not_block_processing(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)

    result = _run(_processor(config, log=StaticLog(error=True)), source)

    assert result.success
    assert not result.skipped_rename


class ThreadRecordingSource:
    def __init__(self) -> None:
        self.threads: list[int] = []

    def is_file_already_processed(self, filename: str) -> bool:
        self.threads.append(threading.get_ident())
        return False

    def get_relevant_feedback(
        self, document_text: str = "", current_category: Optional[str] = None
    ) -> RelevantFeedback:
        self.threads.append(threading.get_ident())
        return RelevantFeedback()


def test_log_and_feedback_reads_run_off_the_event_loop(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)
    recorder = ThreadRecordingSource()
    ai = FakeAI(category="Invoices", values={"date": "2024", "vendor": "Acme"})

    result = _run(_processor(config, ai=ai, log=recorder, feedback=recorder), source)

    assert result.success
    assert len(recorder.threads) == 3
    assert threading.get_ident() not in recorder.threads


def test_extraction_failure_is_classified(make_config: Callable[..., ParafileConfig]) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)
    extractor = FakeExtractor(error=ExtractionError("Failed to parse PDF"))

    result = _run(_processor(config, extractor=extractor), source)

    assert not result.success
    assert result.processing_step is ProcessingStep.TEXT_EXTRACTION
    assert source.exists()


def test_persistent_lock_surfaces_as_extraction_failure(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)
    extractor = FakeExtractor(error=OSError(errno.EBUSY, "Resource busy"))

    result = _run(_processor(config, extractor=extractor), source)

    assert not result.success
    assert result.processing_step is ProcessingStep.TEXT_EXTRACTION


def test_empty_text_fails_extraction(make_config: Callable[..., ParafileConfig]) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)

    result = _run(_processor(config, extractor=FakeExtractor("   \n")), source)

    assert not result.success
    assert result.processing_step is ProcessingStep.TEXT_EXTRACTION
    assert result.error == "No meaningful text extracted from document"


def test_missing_file_is_a_file_access_failure(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)

    result = _run(_processor(config), Path(config.watched_folder) / "ghost.pdf")

    assert not result.success
    assert result.processing_step is ProcessingStep.FILE_ACCESS
    assert result.file_name == "ghost.pdf"


def test_organizer_failure_is_classified(
    make_config: Callable[..., ParafileConfig],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)

    def _fail(*_: object) -> None:
        raise PermissionError("denied")

    monkeypatch.setattr("parafile.organization.organizer.shutil.move", _fail)

    result = _run(_processor(config, ai=FakeAI(category="Invoices")), source)

    assert not result.success
    assert result.processing_step is ProcessingStep.FILE_ORGANIZATION
    assert source.exists()


def test_image_documents_use_vision_with_ocr_context(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config, "photo.png")
    ai = FakeAI(category="Invoices", values={"date": "2024", "vendor": "Acme"})
    extractor = FakeExtractor(
        "Image file (png): 10x10 pixels", metadata={"ocr_text": "TOTAL DUE 42.00"}
    )

    result = _run(_processor(config, ai=ai, extractor=extractor), source)

    assert result.success
    assert ai.calls[0] == ("analyze_image", "TOTAL DUE 42.00")
    assert result.new_name == "Invoice_2024_Acme.png"


def test_feedback_is_included_in_prompts(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config(**INVOICE_CONFIG)
    source = _drop(config)
    store = FeedbackStore(tmp_path / "feedback.json")
    for name in ("a.pdf", "b.pdf"):
        store.store_feedback(
            FeedbackSubmission(
                category_feedback="bills go to invoices",
                original_category="General",
                new_category="Invoices",
                original_name=name,
            )
        )
    ai = FakeAI(category="Invoices", values={"date": "2024", "vendor": "Acme"})

    _run(_processor(config, ai=ai, feedback=store), source)

    prompt = ai.calls[0][1]["feedback"]
    assert "Learned correction patterns" in prompt
    assert "bills go to invoices" in prompt


def test_two_documents_with_same_name_both_succeed(
    make_config: Callable[..., ParafileConfig],
) -> None:
    config = make_config(**INVOICE_CONFIG)
    first = _drop(config, "one.pdf")
    second = _drop(config, "two.pdf")
    ai = FakeAI(category="Invoices", values={"date": "2024", "vendor": "Acme"})
    processor = _processor(config, ai=ai)

    async def scenario() -> list[ProcessingResult]:
        return list(
            await asyncio.gather(
                processor.process_document(first), processor.process_document(second)
            )
        )

    results = asyncio.run(scenario())

    assert all(result.success for result in results)
    names = sorted(result.new_name or "" for result in results)
    assert names == ["Invoice_2024_Acme.pdf", "Invoice_2024_Acme_1.pdf"]


def test_report_pdf_end_to_end_without_organization(
    tmp_path: Path, make_config: Callable[..., ParafileConfig]
) -> None:
    config = make_config(enable_organization=False)
    inbox = tmp_path / "inbox"
    inbox.mkdir()
    report = inbox / "report.pdf"
    report.write_bytes(b"%PDF-1.4")

    result = _run(_processor(config, extractor=FakeExtractor("Quarterly report")), report)

    assert result.success
    assert result.new_name == "report.pdf"
    assert result.new_path == str(report)
    assert result.skipped_move
    assert report.exists()
    assert sorted(p.name for p in inbox.iterdir()) == ["report.pdf"]


def test_stage_policies_cover_every_stage() -> None:
    assert STAGE_POLICIES[ProcessingStep.TEXT_EXTRACTION] is FallbackPolicy.RETRY_THEN_FAIL
    assert STAGE_POLICIES[ProcessingStep.AI_CATEGORIZATION] is FallbackPolicy.DEFAULT
    assert STAGE_POLICIES[ProcessingStep.VARIABLE_EXTRACTION] is FallbackPolicy.DEFAULT
    assert STAGE_POLICIES[ProcessingStep.FILE_ORGANIZATION] is FallbackPolicy.FAIL_FAST


@pytest.mark.parametrize(
    ("message", "step"),
    [
        ("Failed to extract text from PDF", ProcessingStep.TEXT_EXTRACTION),
        ("Permission denied", ProcessingStep.FILE_ACCESS),
        ("Error moving file to destination", ProcessingStep.FILE_ORGANIZATION),
        ("OpenAI API rate limit", ProcessingStep.AI_CATEGORIZATION),
        ("variable timed out", ProcessingStep.VARIABLE_EXTRACTION),
        ("something odd", ProcessingStep.UNKNOWN),
    ],
)
def test_classify_failure(message: str, step: ProcessingStep) -> None:
    assert classify_failure(message) is step
