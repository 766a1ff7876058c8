from __future__ import annotations

import html
import logging
import re

from process_analyzer.metrics_merger import normalize_metrics
from process_analyzer.records import NOT_SPECIFIED, ProcessMetrics, StepTime

logger = logging.getLogger(__name__)

ROW_PATTERN = re.compile(r"<tr[^>]*>(.*?)</tr>", flags=re.IGNORECASE | re.DOTALL)
CELL_PATTERN = re.compile(r"<td[^>]*>(.*?)</td>", flags=re.IGNORECASE | re.DOTALL)
STEP_CELL_PATTERN = re.compile(r"^Step (\d+):")
ESTIMATED_TIME_PATTERN = re.compile(r"Estimated time:\s*([^,\n]+)", flags=re.IGNORECASE)
FREE_TEXT_STEP_PATTERN = re.compile(
    r"Step\s+(\d+):\s*([^.]+)(?:[^E]*Estimated time:\s*([^<\n,]+))?",
    flags=re.IGNORECASE,
)
ESTIMATED_TIME_MARKER = "Estimated time:"


def _cell_text(cell_html: str) -> str:
    text = re.sub(r"<br\s*/?>", "\n", cell_html, flags=re.IGNORECASE)
    text = re.sub(r"</(p|li|div)>", "\n", text, flags=re.IGNORECASE)
    text = re.sub(r"<[^>]+>", "", text)
    return html.unescape(text)


def _table_rows(document_html: str) -> list[list[str]]:
    return [
        [_cell_text(cell) for cell in CELL_PATTERN.findall(row_html)]
        for row_html in ROW_PATTERN.findall(document_html)
    ]


def _step_from_cells(cells: list[str]) -> StepTime | None:
    step_cell = cells[1].strip()
    step_match = STEP_CELL_PATTERN.match(step_cell)
    if not step_match:
        return None
    step_number = step_match.group(1)

    if len(cells) > 2:
        details = cells[2]
        marker_index = details.find(ESTIMATED_TIME_MARKER)
        if marker_index > -1:
            time_match = ESTIMATED_TIME_PATTERN.search(details)
            if not time_match:
                return None
            return StepTime(
                step=step_number,
                step_name=details[:marker_index].strip(),
                time=time_match.group(1).strip(),
            )
        return StepTime(step=step_number, step_name=details.strip(), time=NOT_SPECIFIED)

    name_match = re.match(r"Step \d+:\s*(.+?)(?=\s*Estimated time:|$)", step_cell, flags=re.DOTALL)
    time_match = ESTIMATED_TIME_PATTERN.search(step_cell)
    return StepTime(
        step=step_number,
        step_name=name_match.group(1).strip() if name_match else "",
        time=time_match.group(1).strip() if time_match else NOT_SPECIFIED,
    )


def extract_document_metrics(document_html: str | None) -> ProcessMetrics:
    """Read step counts and times from a generated process document.

    Table rows are read first; when no step rows are present the raw text is
    scanned for ``Step N: ...`` sentences.
    """

    if not document_html:
        return ProcessMetrics()

    try:
        total_steps = 0
        total_time = NOT_SPECIFIED
        step_times: list[StepTime] = []

        for cells in _table_rows(document_html):
            if not cells:
                continue
            label = cells[0].strip()

            if "Total Steps" in label and len(cells) > 1:
                count_match = re.search(r"\d+", cells[1])
                if count_match:
                    total_steps = int(count_match.group(0))

            if "Total Est. Time" in label and len(cells) > 1:
                total_time = cells[1].strip()

            if len(cells) > 1:
                step = _step_from_cells(cells)
                if step is not None:
                    step_times.append(step)

        if not step_times:
            for match in FREE_TEXT_STEP_PATTERN.finditer(document_html):
                step_times.append(
                    StepTime(
                        step=match.group(1),
                        step_name=match.group(2).strip(),
                        time=match.group(3).strip() if match.group(3) else NOT_SPECIFIED,
                    )
                )

        if step_times and total_steps == 0:
            total_steps = len(step_times)

        return normalize_metrics(
            ProcessMetrics(total_steps=total_steps, total_time=total_time, step_times=tuple(step_times))
        )
    except Exception:  # noqa: BLE001
        logger.exception("Error extracting process metrics from document")
        return ProcessMetrics()
