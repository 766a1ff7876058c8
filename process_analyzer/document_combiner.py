from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any, Iterable

from process_analyzer.records import (
    TABULAR_TYPES,
    TEXT_TYPES,
    DocumentRecord,
    TabularContent,
    TextContent,
)

logger = logging.getLogger(__name__)

SOURCE_FILE_COLUMN = "Source File"
NO_VALID_DOCUMENTS = "No valid documents to process"


def _ordered_unique(values: Iterable[Any]) -> list[Any]:
    seen: list[Any] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


def _file_name(record: DocumentRecord, position: int) -> str:
    return record.file_name or f"document-{position + 1}"


def combine_documents(records: Iterable[DocumentRecord]) -> DocumentRecord:
    """Merge parsed records into one record for multi-file analysis."""

    valid = [record for record in records if record.parsed]

    if not valid:
        return DocumentRecord(
            content=TextContent(NO_VALID_DOCUMENTS),
            type="text",
            parsed=False,
            error=NO_VALID_DOCUMENTS,
        )

    if len(valid) == 1:
        record = valid[0]
        if record.file_names:
            return record
        # Same content object; only the provenance list is filled in.
        return replace(record, file_names=[_file_name(record, 0)])

    file_names = [_file_name(record, index) for index, record in enumerate(valid)]
    doc_types = _ordered_unique(record.type for record in valid)
    logger.info("Combining %d documents of types %s", len(valid), ", ".join(doc_types))

    if len(doc_types) == 1 and doc_types[0] in TABULAR_TYPES:
        return _combine_tabular(valid, file_names, doc_types[0])

    if any(doc_type in TEXT_TYPES for doc_type in doc_types):
        return _combine_text(valid, file_names, doc_types)

    return _combine_mixed(valid, file_names)


def _combine_tabular(records: list[DocumentRecord], file_names: list[str], doc_type: str) -> DocumentRecord:
    headers = _ordered_unique(header for record in records for header in (record.headers or []))

    rows: list[dict[str, Any]] = []
    for record, file_name in zip(records, file_names):
        source_rows = record.content.rows if isinstance(record.content, TabularContent) else []
        for row in source_rows:
            standardized = {header: "" for header in headers}
            standardized.update({key: value for key, value in row.items() if key in standardized})
            standardized[SOURCE_FILE_COLUMN] = file_name
            rows.append(standardized)

    if SOURCE_FILE_COLUMN not in headers:
        headers.append(SOURCE_FILE_COLUMN)

    return DocumentRecord(
        content=TabularContent(rows=rows, headers=headers),
        type=doc_type,
        parsed=True,
        file_names=file_names,
    )


def _combine_text(records: list[DocumentRecord], file_names: list[str], doc_types: list[str]) -> DocumentRecord:
    parts: list[str] = []
    for record, file_name in zip(records, file_names):
        if isinstance(record.content, TextContent):
            text = record.content.text
        else:
            text = json.dumps(record.content.rows, default=str)
        parts.append(f"\n\n===== DOCUMENT: {file_name} =====\n\n{text}")

    keywords = _ordered_unique(
        keyword for record in records for keyword in ((record.structured_data or {}).get("keywords") or [])
    )

    return DocumentRecord(
        content=TextContent("".join(parts)),
        type="text",
        parsed=True,
        file_names=file_names,
        structured_data={
            "documentCount": len(records),
            "documentTypes": doc_types,
            "documentNames": file_names,
            "keywords": keywords,
        },
    )


def _delimited_value(value: Any, delimiter: str) -> str:
    text = "" if value is None else str(value)
    if delimiter in text:
        return f'"{text}"'
    return text


def table_to_text(content: TabularContent, delimiter: str = ",") -> str:
    headers = content.headers or (list(content.rows[0].keys()) if content.rows else [])
    lines = [delimiter.join(headers)]
    for row in content.rows:
        lines.append(delimiter.join(_delimited_value(row.get(header), delimiter) for header in headers))
    return "\n".join(lines) + "\n"


def _combine_mixed(records: list[DocumentRecord], file_names: list[str]) -> DocumentRecord:
    parts: list[str] = []
    for record, file_name in zip(records, file_names):
        if isinstance(record.content, TabularContent):
            text = table_to_text(record.content)
        else:
            text = record.content.text
        parts.append(f"\n\n===== DOCUMENT: {file_name} ({record.type}) =====\n\n{text}")

    return DocumentRecord(
        content=TextContent("".join(parts)),
        type="text",
        parsed=True,
        file_names=file_names,
    )
