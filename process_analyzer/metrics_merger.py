from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Protocol

from process_analyzer.config import DEFAULT_WORKDAY_HOURS
from process_analyzer.durations import format_minutes, parse_time_to_minutes
from process_analyzer.records import (
    UNKNOWN,
    DiagramDescription,
    OptimizedProcess,
    ProcessMetrics,
    RecoveredResult,
    StepTime,
    Suggestion,
    placeholder_step,
)

logger = logging.getLogger(__name__)

DEFAULT_SAVINGS_PERCENT = 30
STEP_REDUCTION_FACTOR = 0.7

DEFAULT_SUGGESTIONS = (
    Suggestion(
        title="Streamline Approval Process",
        description="Consolidate multiple approval steps into a single, parallel approval workflow.",
        time_saved="Approximately 30% of approval time",
    ),
    Suggestion(
        title="Automate Manual Data Entry",
        description="Replace manual data entry with automated form processing.",
        time_saved="Up to 50% of data processing time",
    ),
    Suggestion(
        title="Eliminate Redundant Reviews",
        description="Remove duplicate review cycles and implement a single comprehensive review.",
        time_saved="About 25% of review cycle time",
    ),
)


class MetricsSource(Protocol):
    total_steps: int
    total_time: str
    step_times: tuple[StepTime, ...]


@dataclass(frozen=True)
class OptimizedMetrics:
    total_steps: int
    total_time: str
    suggestions: tuple[Suggestion, ...]
    time_savings_percent: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSteps": self.total_steps,
            "totalTime": self.total_time,
            "suggestions": [item.to_dict() for item in self.suggestions],
            "timeSavingsPercent": self.time_savings_percent,
        }


@dataclass(frozen=True)
class MergedMetrics(ProcessMetrics):
    optimized: OptimizedMetrics | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        if self.optimized is not None:
            payload["optimized"] = self.optimized.to_dict()
        return payload


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_step_times(
    step_times: Iterable[StepTime],
    total_steps: int,
    *,
    placeholder_prefix: str = "Step",
) -> tuple[StepTime, ...]:
    """Truncate or pad ``step_times`` so its length equals ``total_steps``.

    A zero step count empties the list. Applying this twice gives the same
    result as applying it once.
    """

    steps = list(step_times)
    total_steps = max(0, total_steps)
    if len(steps) == total_steps:
        return tuple(steps)

    logger.debug("Adjusting step times to match total steps (%d vs %d)", len(steps), total_steps)
    del steps[total_steps:]
    while len(steps) < total_steps:
        steps.append(placeholder_step(len(steps) + 1, placeholder_prefix))
    return tuple(steps)


def normalize_metrics(metrics: ProcessMetrics) -> ProcessMetrics:
    return ProcessMetrics(
        total_steps=metrics.total_steps,
        total_time=metrics.total_time,
        step_times=normalize_step_times(metrics.step_times, metrics.total_steps),
    )


def calculate_time_savings_percent(
    original_time: str | None,
    optimized_time: str | None,
    *,
    workday_hours: int = DEFAULT_WORKDAY_HOURS,
) -> int | None:
    original_minutes = parse_time_to_minutes(original_time, workday_hours=workday_hours)
    optimized_minutes = parse_time_to_minutes(optimized_time, workday_hours=workday_hours)
    if not original_minutes or not optimized_minutes:
        return None
    return _round_half_up((original_minutes - optimized_minutes) / original_minutes * 100)


def merge_metrics(
    diagram_metrics: MetricsSource | None,
    document_metrics: MetricsSource | None,
    optimization_metrics: RecoveredResult | None = None,
    *,
    workday_hours: int = DEFAULT_WORKDAY_HOURS,
) -> MergedMetrics:
    """Reconcile diagram and document metrics, diagram values first.

    Document values fill in only where the diagram has no step count, an
    unknown total time, or no per-step times. Step times are normalized to
    the step count last.
    """

    diagram = diagram_metrics or ProcessMetrics()
    document = document_metrics or ProcessMetrics()

    total_steps = diagram.total_steps if diagram.total_steps else (document.total_steps or 0)

    total_time = diagram.total_time
    if not total_time or total_time == UNKNOWN:
        total_time = document.total_time or UNKNOWN

    step_times = diagram.step_times if diagram.step_times else document.step_times

    optimized = None
    if optimization_metrics is not None:
        savings = calculate_time_savings_percent(total_time, optimization_metrics.total_time, workday_hours=workday_hours)
        optimized = OptimizedMetrics(
            total_steps=optimization_metrics.total_steps or math.floor(total_steps * STEP_REDUCTION_FACTOR),
            total_time=optimization_metrics.total_time or UNKNOWN,
            suggestions=tuple(optimization_metrics.suggestions or ()),
            time_savings_percent=DEFAULT_SAVINGS_PERCENT if savings is None else savings,
        )

    return MergedMetrics(
        total_steps=total_steps,
        total_time=total_time,
        step_times=normalize_step_times(step_times, total_steps),
        optimized=optimized,
    )


def build_optimized_process(
    original_metrics: ProcessMetrics,
    workflow_diagram: DiagramDescription,
    recovered: RecoveredResult,
    *,
    provider: str | None = None,
    workday_hours: int = DEFAULT_WORKDAY_HOURS,
) -> OptimizedProcess:
    original_steps = original_metrics.total_steps
    optimized_steps = recovered.total_steps or math.floor(original_steps * STEP_REDUCTION_FACTOR)

    original_minutes = parse_time_to_minutes(original_metrics.total_time, workday_hours=workday_hours)
    if recovered.total_time:
        optimized_minutes = parse_time_to_minutes(recovered.total_time, workday_hours=workday_hours)
    elif original_minutes and original_steps > 0:
        optimized_minutes = math.floor(original_minutes * (optimized_steps / original_steps))
    else:
        optimized_minutes = None

    optimized_time = recovered.total_time or (format_minutes(optimized_minutes) if optimized_minutes else UNKNOWN)

    if original_minutes and optimized_minutes:
        savings = _round_half_up((original_minutes - optimized_minutes) / original_minutes * 100)
    elif original_steps > 0:
        savings = _round_half_up((original_steps - optimized_steps) / original_steps * 100)
    else:
        savings = DEFAULT_SAVINGS_PERCENT

    summary = recovered.summary or (
        f"By implementing these optimizations, the process could be reduced from {original_steps} to "
        f"{optimized_steps} steps ({savings}% reduction) and save approximately {savings}% of processing time."
    )

    return OptimizedProcess(
        summary=summary,
        suggestions=tuple(recovered.suggestions or ()) or DEFAULT_SUGGESTIONS,
        metrics=ProcessMetrics(
            total_steps=optimized_steps,
            total_time=optimized_time,
            step_times=normalize_step_times(
                recovered.step_times or (),
                optimized_steps,
                placeholder_prefix="Optimized Step",
            ),
        ),
        workflow_diagram=DiagramDescription(diagram=recovered.workflow or workflow_diagram.diagram),
        time_savings_percent=savings,
        provider=provider,
    )


def find_redundant_steps(step_times: Iterable[StepTime]) -> list[dict[str, Any]]:
    """Group approval and review steps that could be consolidated."""

    steps = list(step_times)
    groups: list[dict[str, Any]] = []

    approval_steps = [step for step in steps if "approv" in step.step_name.lower()]
    if len(approval_steps) > 1:
        groups.append(
            {
                "type": "approval",
                "steps": approval_steps,
                "suggestion": "Consider consolidating multiple approval steps into a single approval workflow",
            }
        )

    review_steps = [
        step for step in steps if "review" in step.step_name.lower() or "check" in step.step_name.lower()
    ]
    if len(review_steps) > 1:
        groups.append(
            {
                "type": "review",
                "steps": review_steps,
                "suggestion": "Consider combining multiple review steps into a single comprehensive review",
            }
        )

    return groups
