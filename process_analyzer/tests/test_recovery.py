import unittest
from unittest.mock import patch

from process_analyzer.metrics_merger import build_optimized_process
from process_analyzer.records import DiagramDescription, ProcessMetrics, RecoveredResult
from process_analyzer.recovery import (
    DEFAULT_RECOVERED_RESULT,
    GENERIC_SUGGESTION,
    recover_optimization_result,
    strip_trailing_commas,
)

FENCED_RESPONSE = """Here is the optimized process:

```json
{
  "summary": "Consolidate approvals into one step.",
  "totalSteps": 3,
  "totalTime": "2 hours",
  "suggestions": [
    {"title": "Parallel approvals", "description": "Chair and dean sign together.", "timeSaved": "1 day"},
  ],
  "stepTimes": [
    {"step": "1", "stepName": "Submit", "time": "30 min"},
    {"step": 2, "stepName": "Approve"},
  ],
  "workflow": "graph TD\\nA[Submit] --> B[Approve]"
}
```
"""


def _finalize(result: RecoveredResult):
    return build_optimized_process(
        ProcessMetrics(total_steps=5, total_time="5 hours"),
        DiagramDescription(diagram="graph TD\nA --> B"),
        result,
    )


class TestRecoveryTiers(unittest.TestCase):
    def test_fenced_json_block_with_trailing_commas(self):
        result = recover_optimization_result(FENCED_RESPONSE)

        self.assertEqual(result.summary, "Consolidate approvals into one step.")
        self.assertEqual(result.total_steps, 3)
        self.assertEqual(result.total_time, "2 hours")
        self.assertEqual(result.suggestions[0].title, "Parallel approvals")
        self.assertEqual(result.suggestions[0].time_saved, "1 day")
        self.assertEqual(result.step_times[1].step, "2")
        self.assertEqual(result.step_times[1].time, "Not specified")
        self.assertEqual(result.workflow, "graph TD\nA[Submit] --> B[Approve]")
        self.assertTrue(_finalize(result).suggestions)

    def test_unfenced_raw_json(self):
        raw = '{"summary": "Automate intake", "totalSteps": "4 steps", "suggestions": []}'

        result = recover_optimization_result(raw)

        self.assertEqual(result.summary, "Automate intake")
        self.assertEqual(result.total_steps, 4)
        self.assertEqual(result.suggestions, ())
        self.assertIsNone(result.total_time)
        self.assertTrue(_finalize(result).suggestions)

    def test_prose_with_total_steps_and_suggestion_array(self):
        prose = (
            "The optimized flow is shorter.\n"
            "Total Steps: 7\n"
            "suggestions: [{title: 'Automate checks', description: 'Use a rules engine'},]\n"
        )

        result = recover_optimization_result(prose)

        self.assertEqual(result.total_steps, 7)
        self.assertEqual(len(result.suggestions), 1)
        self.assertEqual(result.suggestions[0].title, "Automate checks")
        self.assertEqual(result.suggestions[0].description, "Use a rules engine")
        self.assertIsNone(result.workflow)
        self.assertTrue(_finalize(result).suggestions)

    def test_gibberish_yields_empty_result(self):
        result = recover_optimization_result("%%% ??? lorem ipsum ###")

        self.assertEqual(result, RecoveredResult())
        finalized = _finalize(result)
        self.assertEqual(len(finalized.suggestions), 3)
        self.assertEqual(finalized.metrics.total_steps, 3)

    def test_unparseable_suggestions_fall_back_to_generic(self):
        result = recover_optimization_result("suggestions: [{title: broken]\nsummary: keep going")

        self.assertEqual(result.suggestions, (GENERIC_SUGGESTION,))
        self.assertEqual(result.summary, "keep going")

    def test_trailing_graph_block_is_workflow(self):
        text = "Summary: fewer handoffs\nTotal time: 3 hours\n```\ngraph TD\nA[Start] --> B[Done]\n```"

        result = recover_optimization_result(text)

        self.assertEqual(result.total_time, "3 hours")
        self.assertEqual(result.workflow, "graph TD\nA[Start] --> B[Done]")

    def test_fence_language_tag_is_case_insensitive(self):
        text = "Here you go:\n```JSON\n{\"summary\": \"Merge reviews\", \"totalSteps\": 4, \"stepTimes\": [{\"step\": 1, \"stepName\": \"Review\"},],}\n```"

        result = recover_optimization_result(text)

        self.assertEqual(result.summary, "Merge reviews")
        self.assertEqual(result.total_steps, 4)
        self.assertEqual(result.step_times[0].step_name, "Review")

    def test_fence_with_other_language_tag(self):
        text = "```javascript\n{\"totalTime\": \"2 hours\", \"totalSteps\": 3, \"stepTimes\": [{\"step\": \"1\", \"stepName\": \"Submit\", \"time\": \"2 hours\"}]}\n```"

        result = recover_optimization_result(text)

        self.assertEqual(result.total_time, "2 hours")
        self.assertEqual(result.total_steps, 3)
        self.assertEqual(len(result.step_times), 1)

    def test_invalid_fenced_block_falls_through_to_field_patterns(self):
        text = "```json\n{not json at all\n```\nTotal steps: 2"

        result = recover_optimization_result(text)

        self.assertEqual(result.total_steps, 2)

    def test_unexpected_failure_returns_default_result(self):
        with patch("process_analyzer.recovery._recover_fields", side_effect=RuntimeError("boom")):
            result = recover_optimization_result("not json")

        self.assertEqual(result, DEFAULT_RECOVERED_RESULT)
        self.assertEqual(len(result.suggestions), 2)
        self.assertEqual(result.step_times, ())

    def test_none_input_is_tolerated(self):
        self.assertEqual(recover_optimization_result(None), RecoveredResult())


class TestTrailingCommas(unittest.TestCase):
    def test_strips_before_closing_brackets(self):
        self.assertEqual(strip_trailing_commas('{"a": [1, 2, ], }'), '{"a": [1, 2]}')


if __name__ == "__main__":
    unittest.main()
