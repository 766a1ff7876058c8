from __future__ import annotations

import logging
import re

from process_analyzer.config import DEFAULT_WORKDAY_HOURS
from process_analyzer.durations import (
    DURATION_UNIT,
    NUMBER_START,
    find_duration_tokens,
    format_minutes,
    sum_duration_tokens,
)
from process_analyzer.records import UNKNOWN, DiagramMetrics, StepTime

logger = logging.getLogger(__name__)

STEP_LABEL_PATTERN = re.compile(
    r"\[\s*(?:Step\s+\d+|Process\s+\d+|Activity\s+\d+)|\"(?:Step|Process|Activity)\s+\d+",
    flags=re.IGNORECASE,
)
BOX_PATTERN = re.compile(r"\[[^\]]+\]")
TIMED_STEP_PATTERN = re.compile(
    rf"\[\s*\"?\s*((?:Step|Process|Activity)\s+(\d+)[^\]]*?)({NUMBER_START}\d+\s*{DURATION_UNIT})([^\]]*?)\]",
    flags=re.IGNORECASE,
)
LABELED_BOX_PATTERN = re.compile(r"\[\s*\"?([^\"\]]+)\"?\s*\]")
BOX_DURATION_PATTERN = re.compile(rf"\(?\s*({NUMBER_START}\d+\s*{DURATION_UNIT}[^)]*)\)?", flags=re.IGNORECASE)

TERMINAL_WORDS = ("start", "end", "begin")


def _is_terminal(label: str) -> bool:
    lowered = label.lower()
    return any(word in lowered for word in TERMINAL_WORDS)


def _clean_label(label: str) -> str:
    cleaned = BOX_DURATION_PATTERN.sub("", label, count=1)
    return re.sub(r"\s{2,}", " ", cleaned).strip().strip('"').strip()


def count_steps(diagram: str) -> int:
    explicit = STEP_LABEL_PATTERN.findall(diagram)
    if explicit:
        return len(explicit)
    return sum(1 for box in BOX_PATTERN.findall(diagram) if not _is_terminal(box))


def extract_step_times(diagram: str) -> list[StepTime]:
    step_times = [
        StepTime(
            step=match.group(2),
            step_name=_clean_label(match.group(1) + match.group(3) + match.group(4)),
            time=match.group(3).strip(),
        )
        for match in TIMED_STEP_PATTERN.finditer(diagram)
    ]
    if step_times:
        return step_times

    step_number = 1
    for match in LABELED_BOX_PATTERN.finditer(diagram):
        label = match.group(1).strip()
        if _is_terminal(label):
            continue
        duration = BOX_DURATION_PATTERN.search(label)
        step_times.append(
            StepTime(
                step=str(step_number),
                step_name=_clean_label(label),
                time=duration.group(1).strip() if duration else UNKNOWN,
            )
        )
        step_number += 1
    return step_times


def extract_diagram_metrics(diagram: str | None, *, workday_hours: int = DEFAULT_WORKDAY_HOURS) -> DiagramMetrics:
    """Derive step count, total duration and per-step times from flow-diagram text.

    Durations are summed over every token in the text, not per box. Returns
    zeroed metrics instead of raising.
    """

    if not diagram:
        return DiagramMetrics()

    try:
        total_minutes = sum_duration_tokens(diagram, workday_hours=workday_hours)
        return DiagramMetrics(
            total_steps=count_steps(diagram),
            total_time=format_minutes(total_minutes) if total_minutes is not None else UNKNOWN,
            step_times=tuple(extract_step_times(diagram)),
            time_estimates=tuple(raw for _, _, raw in find_duration_tokens(diagram)),
        )
    except Exception:  # noqa: BLE001
        logger.exception("Error extracting workflow metrics")
        return DiagramMetrics()
