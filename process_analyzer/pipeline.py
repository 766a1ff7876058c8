from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable

from process_analyzer.config import Settings
from process_analyzer.diagram_metrics import extract_diagram_metrics
from process_analyzer.document_combiner import combine_documents
from process_analyzer.document_metrics import extract_document_metrics
from process_analyzer.generation import (
    GeneratedDocument,
    GeneratedWorkflow,
    generate_formatted_document,
    generate_optimization_text,
    generate_workflow,
)
from process_analyzer.ingestion import parse_document
from process_analyzer.llm_provider import GenerationClient
from process_analyzer.metrics_merger import build_optimized_process, find_redundant_steps, merge_metrics
from process_analyzer.records import (
    DiagramDescription,
    DocumentRecord,
    OptimizedProcess,
    ProcessMetrics,
    failed_record,
)
from process_analyzer.recovery import recover_optimization_result

logger = logging.getLogger(__name__)


class AllFilesFailedError(RuntimeError):
    def __init__(self, details: list[dict[str, str | None]]) -> None:
        super().__init__("None of the uploaded documents could be processed")
        self.details = details


@dataclass(frozen=True)
class IncomingFile:
    file_name: str
    media_type: str
    content: bytes


@dataclass(frozen=True)
class FileStatus:
    file_name: str
    parsed: bool
    type: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"fileName": self.file_name, "parsed": self.parsed, "type": self.type}


@dataclass(frozen=True)
class BatchResult:
    status: str
    message: str
    records: list[DocumentRecord]
    files: list[FileStatus]
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProcessingResult:
    combined: DocumentRecord
    files: list[FileStatus]
    formatted_document: GeneratedDocument
    workflow: GeneratedWorkflow
    process_metrics: ProcessMetrics
    provider: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "documentCount": len(self.files),
            "processedFiles": [status.to_dict() for status in self.files],
            "formattedDocument": self.formatted_document.to_dict(),
            "workflowDiagram": self.workflow.to_dict(),
            "processMetrics": self.process_metrics.to_dict(),
            "provider": self.provider,
        }


def _stage_upload(upload: IncomingFile, directory: str | None) -> Path:
    suffix = Path(upload.file_name).suffix
    with tempfile.NamedTemporaryFile(mode="wb", suffix=suffix, dir=directory, delete=False) as handle:
        handle.write(upload.content)
    return Path(handle.name)


def _discard_staged(path: Path) -> None:
    try:
        os.unlink(path)
    except OSError as exc:
        logger.warning("Error deleting temporary file %s: %s", path, exc)


def parse_file(upload: IncomingFile, *, temp_dir: str | None = None) -> DocumentRecord:
    """Stage one upload on disk, parse it, and always remove the staged copy."""

    try:
        staged = _stage_upload(upload, temp_dir)
    except OSError as exc:
        logger.warning("Could not stage %s: %s", upload.file_name, exc)
        return failed_record("error", f"Failed to read file: {exc}", str(exc), upload.file_name)

    try:
        try:
            content = staged.read_bytes()
        except OSError as exc:
            logger.warning("Could not read staged file for %s: %s", upload.file_name, exc)
            return failed_record("error", f"Failed to read file: {exc}", str(exc), upload.file_name)
        return parse_document(content, upload.media_type, upload.file_name)
    finally:
        _discard_staged(staged)


def parse_batch(files: Iterable[IncomingFile], *, temp_dir: str | None = None) -> BatchResult:
    """Parse every upload one at a time; fails only when nothing parsed."""

    records: list[DocumentRecord] = []
    statuses: list[FileStatus] = []
    warnings: list[str] = []

    for upload in files:
        logger.info("Processing file %s with media type %s", upload.file_name, upload.media_type)
        record = parse_file(upload, temp_dir=temp_dir)
        if record.file_name != upload.file_name:
            record = replace(record, file_name=upload.file_name)
        records.append(record)
        statuses.append(FileStatus(upload.file_name, record.parsed, record.type, record.error))
        if not record.parsed:
            warnings.append(f"{upload.file_name}: {record.error}")

    if not any(status.parsed for status in statuses):
        raise AllFilesFailedError([{"fileName": status.file_name, "error": status.error} for status in statuses])

    status = "warning" if warnings else "success"
    message = f"{sum(1 for item in statuses if item.parsed)} of {len(statuses)} files parsed."
    return BatchResult(status=status, message=message, records=records, files=statuses, warnings=warnings)


def process_documents(
    files: Iterable[IncomingFile],
    client: GenerationClient,
    settings: Settings,
    *,
    temp_dir: str | None = None,
) -> ProcessingResult:
    batch = parse_batch(files, temp_dir=temp_dir)
    combined = combine_documents(batch.records)

    logger.info("Generating formatted document from %d file(s)", len(combined.file_names))
    document = generate_formatted_document(combined, client, temperature=settings.document_temperature)

    logger.info("Generating workflow diagram")
    workflow = generate_workflow(
        combined,
        client,
        temperature=settings.workflow_temperature,
        workday_hours=settings.workday_hours,
    )

    document_metrics = extract_document_metrics(document.content)
    merged = merge_metrics(workflow.metrics, document_metrics, workday_hours=settings.workday_hours)
    process_metrics = ProcessMetrics(
        total_steps=merged.total_steps,
        total_time=merged.total_time,
        step_times=merged.step_times,
    )
    logger.info("Process metrics: %d steps, %s", process_metrics.total_steps, process_metrics.total_time)

    return ProcessingResult(
        combined=combined,
        files=batch.files,
        formatted_document=document,
        workflow=workflow,
        process_metrics=process_metrics,
        provider=client.name,
    )


def optimize_process(
    original_metrics: ProcessMetrics,
    workflow_diagram: DiagramDescription,
    client: GenerationClient,
    settings: Settings,
) -> OptimizedProcess:
    """Ask the generation client for an optimized process and assemble the result.

    Diagram-derived metrics take precedence over the supplied ones when both
    are present, matching how the metrics were produced for the document.
    """

    redundant_groups = find_redundant_steps(original_metrics.step_times)
    generated = generate_optimization_text(
        original_metrics,
        workflow_diagram,
        client,
        redundant_groups=redundant_groups,
        temperature=settings.optimization_temperature,
    )
    logger.info("Optimization generation successful using %s", client.name)

    recovered = recover_optimization_result(generated)
    reference = merge_metrics(
        extract_diagram_metrics(workflow_diagram.diagram, workday_hours=settings.workday_hours),
        original_metrics,
        workday_hours=settings.workday_hours,
    )
    return build_optimized_process(
        ProcessMetrics(total_steps=reference.total_steps, total_time=reference.total_time, step_times=reference.step_times),
        workflow_diagram,
        recovered,
        provider=client.name,
        workday_hours=settings.workday_hours,
    )
