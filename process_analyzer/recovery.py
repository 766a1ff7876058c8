from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from process_analyzer.records import RecoveredResult, Suggestion
from process_analyzer.schema_models import RecoveredPayloadModel, validate_recovered_payload

logger = logging.getLogger(__name__)

FENCED_BLOCK_PATTERN = re.compile(r"```(?:[\w+-]+[ \t]*(?=\r?\n)|json\b)?\s*([\s\S]*?)```", re.I)
TRAILING_COMMA_PATTERN = re.compile(r",\s*([\]}])")

SUMMARY_PATTERNS = (
    re.compile(r"[\"']?summary[\"']?\s*:\s*[\"']([^\"']+)[\"']", re.I),
    re.compile(r"summary[^:]*:\s*([^\n]+)", re.I),
)
TOTAL_STEPS_PATTERNS = (
    re.compile(r"[\"']?total\s*steps?[\"']?\s*:\s*(\d+)", re.I),
    re.compile(r"total\s*steps?[^:]*:\s*(\d+)", re.I),
)
TOTAL_TIME_PATTERNS = (
    re.compile(r"[\"']?total\s*time[\"']?\s*:\s*[\"']([^\"']+)[\"']", re.I),
    re.compile(r"total\s*time[^:]*:\s*([^\n]+)", re.I),
)
SUGGESTIONS_PATTERN = re.compile(r"[\"']?suggestions[\"']?\s*:\s*(\[[\s\S]*?\])", re.I)
WORKFLOW_VALUE_PATTERN = re.compile(r"[\"']?workflow[\"']?\s*:\s*[\"']([^\"']+)[\"']", re.I)
WORKFLOW_BLOCK_PATTERN = re.compile(r"graph TD[\s\S]+?(?=```|\Z)")

GENERIC_SUGGESTION = Suggestion(
    title="Process Optimization",
    description="Review and optimize the workflow to reduce unnecessary steps.",
    time_saved="Varies based on implementation",
)

DEFAULT_RECOVERED_RESULT = RecoveredResult(
    summary="Optimization completed successfully, but result parsing failed.",
    suggestions=(
        Suggestion(
            title="Streamline Approval Process",
            description="Consolidate multiple approval steps into a single, parallel approval workflow.",
            time_saved="Approximately 30% of approval time",
        ),
        Suggestion(
            title="Automate Manual Steps",
            description="Replace manual processes with automation where possible.",
            time_saved="Up to 40% of manual processing time",
        ),
    ),
    step_times=(),
)


def strip_trailing_commas(text: str) -> str:
    return TRAILING_COMMA_PATTERN.sub(r"\1", text)


def _decode_payload(text: str) -> RecoveredResult | None:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    try:
        return validate_recovered_payload(payload)
    except ValidationError as exc:
        logger.warning("Decoded optimization payload failed validation: %s", exc.errors()[:3])
        return None


def _first_group(patterns: tuple[re.Pattern, ...], text: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


def _normalize_suggestion_text(array_text: str) -> str:
    cleaned = re.sub(r",\s*]", "]", array_text)
    cleaned = re.sub(r"([{,]\s*)[\"']?(\w+)[\"']?\s*:", r'\1"\2":', cleaned)
    return re.sub(r":\s*[\"'](.*?)[\"']", r':"\1"', cleaned)


def _recover_suggestions(text: str) -> tuple[Suggestion, ...] | None:
    match = SUGGESTIONS_PATTERN.search(text)
    if not match:
        return None
    try:
        items = json.loads(_normalize_suggestion_text(match.group(1)))
        if not isinstance(items, list):
            raise ValueError("suggestions payload is not a list")
        suggestions = RecoveredPayloadModel.model_validate({"suggestions": items}).to_result().suggestions
    except (ValueError, ValidationError) as exc:
        logger.warning("Failed to parse suggestions: %s", exc)
        return (GENERIC_SUGGESTION,)
    return suggestions or (GENERIC_SUGGESTION,)


def _recover_fields(text: str) -> RecoveredResult:
    fields: dict[str, Any] = {
        "summary": _first_group(SUMMARY_PATTERNS, text),
        "total_time": _first_group(TOTAL_TIME_PATTERNS, text),
        "suggestions": _recover_suggestions(text),
    }

    steps = _first_group(TOTAL_STEPS_PATTERNS, text)
    fields["total_steps"] = int(steps) if steps is not None else None

    workflow_match = WORKFLOW_VALUE_PATTERN.search(text)
    if workflow_match:
        fields["workflow"] = workflow_match.group(1)
    else:
        block_match = WORKFLOW_BLOCK_PATTERN.search(text)
        fields["workflow"] = block_match.group(0).strip() if block_match else None

    return RecoveredResult(**fields)


def recover_optimization_result(raw_text: str | None) -> RecoveredResult:
    """Recover a structured optimization result from generated text.

    Tries a fenced JSON block, then the whole text as JSON, then per-field
    pattern matches. Fields that cannot be found are left unset. Always
    returns a result; unexpected failures give ``DEFAULT_RECOVERED_RESULT``.
    """

    try:
        text = raw_text or ""

        fenced = FENCED_BLOCK_PATTERN.search(text)
        if fenced and fenced.group(1):
            result = _decode_payload(strip_trailing_commas(fenced.group(1).strip()))
            if result is not None:
                return result
            logger.warning("Failed to parse fenced JSON block in optimization result")

        result = _decode_payload(text.strip())
        if result is not None:
            return result

        logger.info("Optimization result is not JSON; recovering fields individually")
        return _recover_fields(text)
    except Exception:  # noqa: BLE001
        logger.exception("Error parsing optimization result")
        return DEFAULT_RECOVERED_RESULT
