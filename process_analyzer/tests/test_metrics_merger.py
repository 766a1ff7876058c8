import pytest

from process_analyzer.metrics_merger import (
    DEFAULT_SUGGESTIONS,
    build_optimized_process,
    calculate_time_savings_percent,
    find_redundant_steps,
    merge_metrics,
    normalize_step_times,
)
from process_analyzer.records import (
    DiagramDescription,
    DiagramMetrics,
    ProcessMetrics,
    RecoveredResult,
    StepTime,
    Suggestion,
    placeholder_step,
)


def _steps(count: int, prefix: str = "Task") -> tuple[StepTime, ...]:
    return tuple(StepTime(step=str(index), step_name=f"{prefix} {index}", time="10 min") for index in range(1, count + 1))


@pytest.mark.parametrize("total", [0, 1, 5, 50])
@pytest.mark.parametrize("available", [0, 3, 60])
def test_step_times_always_match_total(total, available):
    merged = merge_metrics(ProcessMetrics(total_steps=total, total_time="1 hour", step_times=_steps(available)), None)

    assert len(merged.step_times) == total
    assert [step.step for step in merged.step_times] == [str(index) for index in range(1, total + 1)]


@pytest.mark.parametrize("total", [0, 1, 5, 50])
def test_merge_is_idempotent(total):
    diagram = DiagramMetrics(total_steps=total, total_time="2 hours", step_times=_steps(3))
    document = ProcessMetrics(total_steps=4, total_time="3 hours", step_times=_steps(4, "Doc"))

    once = merge_metrics(diagram, document)
    twice = merge_metrics(once, once)

    assert twice == once
    assert merge_metrics(twice, None) == once


def test_padding_uses_placeholder_entries():
    merged = merge_metrics(ProcessMetrics(total_steps=3, step_times=_steps(1)), None)

    assert merged.step_times[1:] == (placeholder_step(2), placeholder_step(3))
    assert merged.step_times[2] == StepTime(step="3", step_name="Step 3", time="Not specified")


def test_diagram_values_take_precedence():
    diagram = DiagramMetrics(total_steps=2, total_time="45 minutes", step_times=_steps(2, "Box"))
    document = ProcessMetrics(total_steps=5, total_time="3 hours", step_times=_steps(5, "Row"))

    merged = merge_metrics(diagram, document)

    assert merged.total_steps == 2
    assert merged.total_time == "45 minutes"
    assert [step.step_name for step in merged.step_times] == ["Box 1", "Box 2"]


def test_document_values_fill_gaps():
    diagram = DiagramMetrics(total_steps=0, total_time="Unknown", step_times=())
    document = ProcessMetrics(total_steps=2, total_time="Not specified", step_times=_steps(2, "Row"))

    merged = merge_metrics(diagram, document)

    assert merged.total_steps == 2
    assert merged.total_time == "Not specified"
    assert [step.step_name for step in merged.step_times] == ["Row 1", "Row 2"]


def test_diagram_steps_normalized_to_document_count():
    diagram = DiagramMetrics(total_steps=0, total_time="Unknown", step_times=_steps(5, "Box"))
    document = ProcessMetrics(total_steps=3, total_time="1 hour")

    merged = merge_metrics(diagram, document)

    assert merged.total_steps == 3
    assert [step.step_name for step in merged.step_times] == ["Box 1", "Box 2", "Box 3"]


def test_optimized_sub_metrics_savings():
    diagram = ProcessMetrics(total_steps=10, total_time="10 hours")
    optimization = RecoveredResult(total_steps=6, total_time="6 hours", suggestions=(DEFAULT_SUGGESTIONS[0],))

    merged = merge_metrics(diagram, None, optimization)

    assert merged.optimized.total_steps == 6
    assert merged.optimized.time_savings_percent == 40
    assert merged.to_dict()["optimized"]["timeSavingsPercent"] == 40


def test_optimized_sub_metrics_default_savings():
    merged = merge_metrics(ProcessMetrics(total_steps=10, total_time="Unknown"), None, RecoveredResult())

    assert merged.optimized.total_steps == 7
    assert merged.optimized.total_time == "Unknown"
    assert merged.optimized.time_savings_percent == 30


def test_calculate_time_savings_percent():
    assert calculate_time_savings_percent("2 hours", "90 min") == 25
    assert calculate_time_savings_percent("Unknown", "1 hour") is None


def test_normalize_step_times_is_stable():
    once = normalize_step_times(_steps(2), 4)
    assert normalize_step_times(once, 4) == once


class TestBuildOptimizedProcess:
    workflow = DiagramDescription(diagram="graph TD\nA[Step 1] --> B[Step 2]")

    def test_uses_recovered_values(self):
        recovered = RecoveredResult(
            summary="Merge approvals.",
            total_steps=2,
            total_time="1 hour",
            suggestions=(Suggestion(title="Merge", description="Merge approvals"),),
            step_times=(StepTime(step="1", step_name="Submit", time="30 min"),),
            workflow="graph TD\nA[Submit] --> B[Approve]",
        )
        original = ProcessMetrics(total_steps=4, total_time="2 hours")

        optimized = build_optimized_process(original, self.workflow, recovered, provider="anthropic")

        assert optimized.summary == "Merge approvals."
        assert optimized.metrics.total_steps == 2
        assert optimized.metrics.total_time == "1 hour"
        assert optimized.metrics.step_times[1] == StepTime(step="2", step_name="Optimized Step 2", time="Not specified")
        assert optimized.time_savings_percent == 50
        assert optimized.workflow_diagram.diagram.startswith("graph TD\nA[Submit]")
        assert optimized.workflow_diagram.type == "flow"
        assert optimized.provider == "anthropic"

    def test_estimates_from_step_reduction(self):
        original = ProcessMetrics(total_steps=10, total_time="10 hours")

        optimized = build_optimized_process(original, self.workflow, RecoveredResult())

        assert optimized.metrics.total_steps == 7
        assert optimized.metrics.total_time == "7 hours"
        assert len(optimized.metrics.step_times) == 7
        assert optimized.time_savings_percent == 30
        assert optimized.suggestions == DEFAULT_SUGGESTIONS
        assert "from 10 to 7 steps (30% reduction)" in optimized.summary
        assert optimized.workflow_diagram.diagram == self.workflow.diagram

    def test_step_percentage_when_time_unknown(self):
        original = ProcessMetrics(total_steps=4, total_time="Unknown")

        optimized = build_optimized_process(original, self.workflow, RecoveredResult(total_steps=3))

        assert optimized.metrics.total_time == "Unknown"
        assert optimized.time_savings_percent == 25

    def test_zero_original_steps_defaults_to_thirty(self):
        optimized = build_optimized_process(ProcessMetrics(), self.workflow, RecoveredResult())

        assert optimized.metrics.total_steps == 0
        assert optimized.time_savings_percent == 30
        assert optimized.to_dict()["timeSavingsPercent"] == 30


def test_find_redundant_steps_groups_approvals_and_reviews():
    steps = [
        StepTime("1", "Chair approval"),
        StepTime("2", "Dean approves"),
        StepTime("3", "Budget check"),
        StepTime("4", "Final review"),
        StepTime("5", "Submit"),
    ]

    groups = find_redundant_steps(steps)

    assert [group["type"] for group in groups] == ["approval", "review"]
    assert [step.step for step in groups[0]["steps"]] == ["1", "2"]
    assert [step.step for step in groups[1]["steps"]] == ["3", "4"]


def test_find_redundant_steps_ignores_single_matches():
    assert find_redundant_steps([StepTime("1", "Approve"), StepTime("2", "Review")]) == []


def test_zero_step_diagram_drops_unnumbered_boxes():
    diagram = DiagramMetrics(total_steps=0, total_time="Unknown", step_times=_steps(4, "Box"))

    merged = merge_metrics(diagram, None)

    assert merged.total_steps == 0
    assert merged.step_times == ()
    assert normalize_step_times(_steps(3), 0) == ()
