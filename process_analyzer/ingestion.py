from __future__ import annotations

import io
import logging
import mimetypes
import re
import string
import zipfile
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Iterable
from xml.etree import ElementTree as ET

import xlrd
from openpyxl import load_workbook
from pypdf import PdfReader

from process_analyzer.config import DEFAULT_MAX_FILE_BYTES, DEFAULT_MAX_FILES
from process_analyzer.records import DocumentRecord, TabularContent, TextContent, failed_record

logger = logging.getLogger(__name__)

PDF_MEDIA_TYPE = "application/pdf"
DOC_MEDIA_TYPE = "application/msword"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
XLS_MEDIA_TYPE = "application/vnd.ms-excel"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
CSV_MEDIA_TYPE = "text/csv"
TEXT_MEDIA_TYPE = "text/plain"

ALLOWED_MEDIA_TYPES = {
    PDF_MEDIA_TYPE,
    DOC_MEDIA_TYPE,
    DOCX_MEDIA_TYPE,
    TEXT_MEDIA_TYPE,
    CSV_MEDIA_TYPE,
    XLS_MEDIA_TYPE,
    XLSX_MEDIA_TYPE,
}

EXTENSION_MEDIA_TYPES = {
    ".pdf": PDF_MEDIA_TYPE,
    ".doc": DOC_MEDIA_TYPE,
    ".docx": DOCX_MEDIA_TYPE,
    ".txt": TEXT_MEDIA_TYPE,
    ".csv": CSV_MEDIA_TYPE,
    ".xls": XLS_MEDIA_TYPE,
    ".xlsx": XLSX_MEDIA_TYPE,
}

OLE2_SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
WORD_NAMESPACE = {"w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main"}

DIAGRAM_FILENAME_PATTERN = re.compile(r"(flow|chart|diagram|process|workflow|graph)", flags=re.IGNORECASE)
DIAGRAM_KEYWORDS = [
    "flowchart",
    "flow chart",
    "diagram",
    "process flow",
    "workflow",
    "decision point",
    "start",
    "end",
    "decision",
    "process",
    "approval",
    "review",
    "submit",
    "yes/no",
    "approved",
    "rejected",
    "arrow",
    "node",
    "step",
    "flow",
    "sequence",
]
ARROW_PATTERN = re.compile(r"(-+>|→|⟶|\s+>\s+|--+|=>)")
BOX_PATTERN = re.compile(r"(\[.*?\]|\(.*?\)|\{.*?\})")

PROCESS_KEYWORDS = [
    "process",
    "workflow",
    "procedure",
    "approval",
    "review",
    "submit",
    "application",
    "request",
    "form",
    "document",
    "policy",
    "step",
    "check",
    "verify",
    "confirm",
    "validate",
    "authorize",
    "reject",
    "approve",
    "deny",
    "grant",
    "travel",
    "conference",
    "faculty",
    "instructor",
    "department",
    "dean",
    "chair",
    "signatory",
    "authority",
    "budget",
    "financial",
    "report",
    "submission",
    "criteria",
    "eligibility",
    "funding",
]

HEADER_BREAK_PATTERN = re.compile(r"(\n|^)(\d+\.|\*|[A-Z][A-Z ]+:|[A-Z][A-Z ]+)([ \t]+)([A-Z])")
TABLE_LINE_PATTERN = re.compile(r"(\n|^)([^\n]*\|[^\n]*\|[^\n]*)")
SECTION_HEADER_PATTERN = re.compile(r"^(\d+\.|\*|[A-Z][A-Z\s]+:|[A-Z][A-Z\s]+)(\s+)([A-Za-z].*)")


@dataclass
class ValidationResult:
    status: str
    message: str
    warnings: list[str]


@dataclass(frozen=True)
class UploadedFile:
    file_name: str
    media_type: str
    size: int


def _normalize_extension(filename: str) -> str:
    match = re.search(r"(\.[^./\\]+)$", filename or "")
    return match.group(1).lower() if match else ""


def detect_media_type(filename: str, content_type: str | None) -> str:
    """Resolve the media type used for dispatch.

    Browsers frequently label CSV uploads as Excel, so a ``.csv`` name wins
    over the declared type.
    """

    extension = _normalize_extension(filename)
    declared = (content_type or "").split(";", maxsplit=1)[0].strip().lower()
    if extension == ".csv":
        return CSV_MEDIA_TYPE
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(filename or "")
    return EXTENSION_MEDIA_TYPES.get(extension) or guessed or TEXT_MEDIA_TYPE


def validate_batch(
    files: Iterable[UploadedFile],
    *,
    max_files: int = DEFAULT_MAX_FILES,
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES,
) -> ValidationResult:
    uploads = list(files)
    warnings: list[str] = []

    if not uploads:
        return ValidationResult(status="error", message="No documents uploaded.", warnings=warnings)

    if len(uploads) > max_files:
        return ValidationResult(
            status="error",
            message=f"At most {max_files} files can be processed per batch.",
            warnings=warnings,
        )

    seen: set[str] = set()
    duplicates: list[str] = []
    for upload in uploads:
        if upload.file_name in seen and upload.file_name not in duplicates:
            duplicates.append(upload.file_name)
        seen.add(upload.file_name)
    if duplicates:
        return ValidationResult(
            status="error",
            message=f"Duplicate file names in batch: {', '.join(duplicates)}.",
            warnings=warnings,
        )

    for upload in uploads:
        if upload.size <= 0:
            return ValidationResult(
                status="error",
                message=f"Empty uploads are not allowed ({upload.file_name}).",
                warnings=warnings,
            )
        if upload.size > max_file_bytes:
            return ValidationResult(
                status="error",
                message=f"{upload.file_name} exceeds the {max_file_bytes // (1024 * 1024)} MB limit.",
                warnings=warnings,
            )

    unsupported = [upload for upload in uploads if upload.media_type not in ALLOWED_MEDIA_TYPES]
    if unsupported:
        for upload in unsupported:
            warnings.append(f"Unsupported file type '{upload.media_type or 'unknown'}' for {upload.file_name}.")
        warnings.append("Supported types: PDF, DOC, DOCX, TXT, CSV, XLS, XLSX.")
        return ValidationResult(status="warning", message="Unsupported file type.", warnings=warnings)

    return ValidationResult(status="success", message="Files accepted for processing.", warnings=warnings)


def parse_document(content: bytes | str, media_type: str | None, file_name: str | None) -> DocumentRecord:
    """Parse raw upload content into a ``DocumentRecord``. Never raises."""

    logger.info("Parsing %s as %s", file_name, media_type)
    mime = (media_type or "").lower()
    try:
        if "pdf" in mime:
            return _parse_pdf(_as_bytes(content), file_name)
        if "msword" in mime or "officedocument.wordprocessingml.document" in mime:
            return _parse_docx(_as_bytes(content), file_name)
        if "csv" in mime:
            return _parse_csv(content, file_name)
        if "excel" in mime or "spreadsheetml.sheet" in mime:
            return _parse_spreadsheet(_as_bytes(content), file_name)
        return _parse_text(content, file_name)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected failure while parsing %s", file_name)
        return failed_record("error", f"Failed to parse document: {exc}", str(exc), file_name)


def _as_bytes(content: bytes | str) -> bytes:
    if isinstance(content, str):
        return content.encode("utf-8")
    return bytes(content)


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


def _looks_like_unreadable_pdf_text(text: str) -> bool:
    normalized = (text or "").strip()
    if not normalized:
        return True

    lowered = normalized.lower()
    if "%pdf-" in lowered and "xref" in lowered and "/type /catalog" in lowered:
        return True

    printable = sum(1 for char in normalized if char.isprintable() or char in string.whitespace)
    printable_ratio = printable / max(1, len(normalized))
    replacement_char_ratio = normalized.count("�") / max(1, len(normalized))

    return printable_ratio < 0.75 or replacement_char_ratio > 0.05


def _render_page_by_baseline(page) -> str:
    """Extract page text, starting a new line whenever the text baseline moves."""

    parts: list[str] = []
    last_y: float | None = None

    def visitor(text, cm, tm, font_dict, font_size):
        nonlocal last_y
        if not text:
            return
        y = tm[4] * cm[1] + tm[5] * cm[3] + cm[5]
        if last_y is None or y == last_y:
            parts.append(text)
        else:
            parts.append("\n" + text)
        last_y = y

    page.extract_text(visitor_text=visitor)
    return "".join(parts)


def _pdf_info(reader: PdfReader) -> dict[str, str] | None:
    metadata = reader.metadata
    if not metadata:
        return None
    info = {str(key).lstrip("/"): str(value) for key, value in metadata.items() if value is not None}
    return info or None


def _parse_pdf(content_bytes: bytes, file_name: str | None) -> DocumentRecord:
    try:
        reader = PdfReader(io.BytesIO(content_bytes))
        pages = [_render_page_by_baseline(page) for page in reader.pages]
        raw_text = "\n\n".join(pages)
        if _looks_like_unreadable_pdf_text(raw_text):
            raise ValueError(
                "PDF text extraction returned unreadable/empty content; the file may be scanned, encrypted, or malformed."
            )
        processed = process_pdf_text(raw_text)
        info = _pdf_info(reader)
        diagram_detected = detect_diagram_indicators(processed, file_name)
        structured_data = {
            "title": extract_document_title(processed, info, file_name),
            "sections": extract_sections(processed),
            "keywords": extract_keywords(processed),
            "diagramDetected": diagram_detected,
        }
        logger.info("PDF text extraction successful for %s, content length: %d", file_name, len(processed))
        return DocumentRecord(
            content=TextContent(processed),
            type="pdf",
            parsed=True,
            file_name=file_name,
            structured_data=structured_data,
            page_count=len(reader.pages),
            info=info,
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Primary PDF extraction failed for %s: %s", file_name, exc)
        try:
            return _parse_pdf_minimal(content_bytes, file_name)
        except Exception as fallback_exc:  # noqa: BLE001
            logger.warning("Fallback PDF extraction also failed for %s: %s", file_name, fallback_exc)
            return failed_record(
                "pdf",
                f"Failed to parse PDF content after multiple attempts: {exc}",
                str(exc),
                file_name,
            )


def _parse_pdf_minimal(content_bytes: bytes, file_name: str | None) -> DocumentRecord:
    reader = PdfReader(io.BytesIO(content_bytes))
    text = "\n\n".join((page.extract_text() or "") for page in reader.pages)
    if _looks_like_unreadable_pdf_text(text):
        raise ValueError("PDF contains no extractable text.")
    return DocumentRecord(
        content=TextContent(text),
        type="pdf",
        parsed=True,
        file_name=file_name,
        page_count=len(reader.pages),
        info=_pdf_info(reader),
        note="Used fallback parsing method - structure may be impacted",
    )


def process_pdf_text(text: str) -> str:
    if not text:
        return ""

    normalized = text.replace("\r\n", "\n")
    normalized = re.sub(r"[^\S\n]{2,}", " ", normalized)
    normalized = re.sub(r"[^\S\n]+\n", "\n", normalized)
    normalized = re.sub(r"\n{3,}", "\n\n", normalized).strip()

    with_headers = HEADER_BREAK_PATTERN.sub(r"\1\n\2\3\4", normalized)
    return TABLE_LINE_PATTERN.sub(r"\1\n\2\n", with_headers)


def detect_diagram_indicators(text: str, file_name: str | None) -> bool:
    if file_name and DIAGRAM_FILENAME_PATTERN.search(file_name):
        return True

    keyword_hits = sum(
        1 for keyword in DIAGRAM_KEYWORDS if re.search(rf"\b{re.escape(keyword)}\b", text, flags=re.IGNORECASE)
    )
    if keyword_hits >= 3:
        return True

    return bool(ARROW_PATTERN.search(text) and BOX_PATTERN.search(text))


def extract_document_title(text: str, info: dict[str, str] | None, file_name: str | None) -> str:
    if info and info.get("Title"):
        return info["Title"]

    first_lines = " ".join(text.split("\n")[:10])
    title_match = re.match(r"^([^\n.]+)", first_lines)
    if title_match and len(title_match.group(1)) > 10:
        return title_match.group(1).strip()

    if file_name:
        return re.sub(r"\.[^/.]+$", "", file_name).replace("_", " ")

    return "Untitled Document"


def extract_sections(text: str) -> list[dict[str, str]]:
    sections: list[dict[str, str]] = []
    current = {"title": "Introduction", "content": ""}

    for line in text.split("\n"):
        if SECTION_HEADER_PATTERN.match(line):
            if current["content"].strip():
                sections.append(current)
            current = {"title": line.strip(), "content": ""}
        else:
            current["content"] += line + "\n"

    if current["content"].strip():
        sections.append(current)

    return sections


def extract_keywords(text: str) -> list[str]:
    counts: dict[str, int] = {}
    for keyword in PROCESS_KEYWORDS:
        hits = len(re.findall(rf"\b{keyword}\b", text, flags=re.IGNORECASE))
        if hits:
            counts[keyword] = hits

    ranked = sorted(((keyword, count) for keyword, count in counts.items() if count >= 2), key=lambda item: -item[1])
    return [keyword for keyword, _ in ranked]


# ---------------------------------------------------------------------------
# Word
# ---------------------------------------------------------------------------


def _parse_docx(content_bytes: bytes, file_name: str | None) -> DocumentRecord:
    try:
        with zipfile.ZipFile(io.BytesIO(content_bytes)) as archive:
            xml_payload = archive.read("word/document.xml")
        root = ET.fromstring(xml_payload)
    except (zipfile.BadZipFile, KeyError, ET.ParseError) as exc:
        logger.warning("DOCX extraction failed for %s: %s", file_name, exc)
        return failed_record("docx", f"Failed to parse DOCX content: {exc}", str(exc), file_name)

    messages: list[dict[str, str]] = []
    paragraphs: list[str] = []
    for paragraph in root.iter(f"{{{WORD_NAMESPACE['w']}}}p"):
        runs: list[str] = []
        for node in paragraph.iter():
            if node.tag.endswith("}t") and node.text:
                runs.append(node.text)
            elif node.tag.endswith("}tab"):
                runs.append("\t")
            elif node.tag.endswith("}br"):
                runs.append("\n")
        paragraphs.append("".join(runs))

    for tag in ("drawing", "object", "pict"):
        found = len(root.findall(f".//w:{tag}", WORD_NAMESPACE))
        if found:
            messages.append({"type": "warning", "message": f"Skipped {found} embedded {tag} element(s)."})

    text = "\n\n".join(paragraphs).strip()
    logger.info("DOCX text extraction successful for %s, content length: %d", file_name, len(text))
    return DocumentRecord(
        content=TextContent(text),
        type="docx",
        parsed=True,
        file_name=file_name,
        messages=messages,
    )


# ---------------------------------------------------------------------------
# Delimited text
# ---------------------------------------------------------------------------


def _strip_quotes(value: str) -> str:
    return re.sub(r"^[\"'](.*)[\"']$", r"\1", value.strip(), flags=re.DOTALL)


def detect_delimiter(header_line: str) -> str:
    if len(header_line.split("\t")) > 1:
        return "\t"
    if len(header_line.split(";")) > 1:
        return ";"
    return ","


def split_delimited_line(line: str, delimiter: str) -> list[str]:
    """Split one line, keeping delimiters that sit inside unescaped double quotes."""

    fields: list[str] = []
    inside_quotes = False
    current: list[str] = []

    for index, char in enumerate(line):
        if char == '"' and (index == 0 or line[index - 1] != "\\"):
            inside_quotes = not inside_quotes
        elif char == delimiter and not inside_quotes:
            fields.append(_strip_quotes("".join(current)))
            current = []
        else:
            current.append(char)

    if current:
        fields.append(_strip_quotes("".join(current)))

    return fields


def _parse_csv(content: bytes | str, file_name: str | None) -> DocumentRecord:
    try:
        text = content if isinstance(content, str) else bytes(content).decode("utf-8")
    except UnicodeDecodeError as exc:
        logger.warning("CSV decoding failed for %s: %s", file_name, exc)
        return failed_record("csv", f"Failed to parse CSV content: {exc}", str(exc), file_name)

    if not text.strip():
        return failed_record("csv", "CSV file appears to be empty", "CSV file appears to be empty", file_name)

    line_ending = "\r\n" if "\r\n" in text else "\n"
    lines = text.split(line_ending)
    delimiter = detect_delimiter(lines[0])
    headers = [_strip_quotes(header) for header in split_delimited_line(lines[0], delimiter)]

    rows: list[dict[str, Any]] = []
    for line in lines[1:]:
        if not line.strip():
            continue
        values = split_delimited_line(line, delimiter)
        rows.append({header: values[index] if index < len(values) else "" for index, header in enumerate(headers)})

    return DocumentRecord(
        content=TabularContent(rows=rows, headers=headers),
        type="csv",
        parsed=True,
        file_name=file_name,
    )


# ---------------------------------------------------------------------------
# Spreadsheet
# ---------------------------------------------------------------------------


def _cell_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def _is_empty_row(row: tuple) -> bool:
    return all(cell is None or (isinstance(cell, str) and not cell.strip()) for cell in row)


def _legacy_cell_value(cell: xlrd.sheet.Cell, datemode: int) -> Any:
    if cell.ctype in (xlrd.XL_CELL_EMPTY, xlrd.XL_CELL_BLANK, xlrd.XL_CELL_ERROR):
        return None
    if cell.ctype == xlrd.XL_CELL_DATE:
        return xlrd.xldate.xldate_as_datetime(cell.value, datemode)
    if cell.ctype == xlrd.XL_CELL_BOOLEAN:
        return bool(cell.value)
    if cell.ctype == xlrd.XL_CELL_NUMBER and float(cell.value).is_integer():
        return int(cell.value)
    return cell.value


def _read_legacy_workbook(content_bytes: bytes) -> tuple[list[str], list[tuple]]:
    book = xlrd.open_workbook(file_contents=content_bytes, on_demand=True)
    try:
        sheet = book.sheet_by_index(0)
        rows = [
            tuple(_legacy_cell_value(cell, book.datemode) for cell in sheet.row(index))
            for index in range(sheet.nrows)
        ]
        return list(book.sheet_names()), rows
    finally:
        book.release_resources()


def _read_workbook(content_bytes: bytes) -> tuple[list[str], list[tuple]]:
    workbook = load_workbook(io.BytesIO(content_bytes), read_only=True, data_only=True)
    try:
        worksheet = workbook.worksheets[0]
        return list(workbook.sheetnames), [row for row in worksheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


def _parse_spreadsheet(content_bytes: bytes, file_name: str | None) -> DocumentRecord:
    """Read the first sheet; legacy BIFF workbooks go through xlrd, OOXML through openpyxl."""

    try:
        if content_bytes.startswith(OLE2_SIGNATURE):
            sheet_names, sheet_rows = _read_legacy_workbook(content_bytes)
        else:
            sheet_names, sheet_rows = _read_workbook(content_bytes)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Spreadsheet extraction failed for %s: %s", file_name, exc)
        return failed_record("excel", f"Failed to parse Excel file: {exc}", str(exc), file_name)

    if not sheet_rows or all(_is_empty_row(row) for row in sheet_rows):
        return failed_record("excel", "Excel file appears to be empty", "Excel file appears to be empty", file_name)

    headers = ["" if cell is None else str(cell).strip() for cell in sheet_rows[0]]
    while headers and not headers[-1]:
        headers.pop()
    rows: list[dict[str, Any]] = []
    for sheet_row in sheet_rows[1:]:
        if not sheet_row or _is_empty_row(sheet_row):
            continue
        rows.append(
            {
                header: _cell_value(sheet_row[index]) if index < len(sheet_row) else ""
                for index, header in enumerate(headers)
            }
        )

    return DocumentRecord(
        content=TabularContent(rows=rows, headers=headers),
        type="excel",
        parsed=True,
        file_name=file_name,
        sheet_names=sheet_names,
    )


# ---------------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------------


def _parse_text(content: bytes | str, file_name: str | None) -> DocumentRecord:
    if isinstance(content, str):
        text = content
    else:
        text = bytes(content).decode("utf-8", errors="replace")

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    normalized = re.sub(r"\n{3,}", "\n\n", normalized)
    return DocumentRecord(content=TextContent(normalized), type="text", parsed=True, file_name=file_name)
