from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from process_analyzer.records import (
    NOT_SPECIFIED,
    UNKNOWN,
    DiagramDescription,
    ProcessMetrics,
    RecoveredResult,
    StepTime,
    Suggestion,
)


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _optional_count(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return max(0, int(value))
    match = re.search(r"\d+", str(value))
    return int(match.group(0)) if match else None


class SuggestionModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    title: str = ""
    description: str = ""
    time_saved: str | None = Field(default=None, alias="timeSaved")

    @field_validator("title", "description", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str:
        return _optional_text(value) or ""

    @field_validator("time_saved", mode="before")
    @classmethod
    def _coerce_time_saved(cls, value: Any) -> str | None:
        return _optional_text(value)

    def to_suggestion(self) -> Suggestion:
        return Suggestion(title=self.title, description=self.description, time_saved=self.time_saved)


class StepTimeModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    step: str | None = None
    step_name: str | None = Field(default=None, alias="stepName")
    time: str | None = None

    @field_validator("step", "step_name", "time", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return _optional_text(value)

    def to_step_time(self, position: int, missing_time: str = NOT_SPECIFIED) -> StepTime:
        return StepTime(
            step=self.step or str(position),
            step_name=self.step_name or f"Step {position}",
            time=self.time or missing_time,
        )


class RecoveredPayloadModel(BaseModel):
    """Loose view of an optimization payload; unknown keys are kept and ignored."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    summary: str | None = None
    total_steps: int | None = Field(default=None, alias="totalSteps")
    total_time: str | None = Field(default=None, alias="totalTime")
    suggestions: list[SuggestionModel] | None = None
    step_times: list[StepTimeModel] | None = Field(default=None, alias="stepTimes")
    workflow: str | None = None

    @field_validator("summary", "total_time", "workflow", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return _optional_text(value)

    @field_validator("total_steps", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int | None:
        return _optional_count(value)

    @field_validator("suggestions", "step_times", mode="before")
    @classmethod
    def _keep_mappings(cls, value: Any) -> list[Any] | None:
        if not isinstance(value, list):
            return None
        return [item for item in value if isinstance(item, dict)]

    def to_result(self) -> RecoveredResult:
        return RecoveredResult(
            summary=self.summary,
            total_steps=self.total_steps,
            total_time=self.total_time,
            suggestions=(
                tuple(item.to_suggestion() for item in self.suggestions) if self.suggestions is not None else None
            ),
            step_times=(
                tuple(item.to_step_time(index + 1) for index, item in enumerate(self.step_times))
                if self.step_times is not None
                else None
            ),
            workflow=self.workflow,
        )


class ProcessMetricsModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    total_steps: int = Field(default=0, ge=0, alias="totalSteps")
    total_time: str = Field(default=UNKNOWN, alias="totalTime")
    step_times: list[StepTimeModel] = Field(default_factory=list, alias="stepTimes")

    @field_validator("total_steps", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return _optional_count(value) or 0

    @field_validator("total_time", mode="before")
    @classmethod
    def _coerce_time(cls, value: Any) -> str:
        return _optional_text(value) or UNKNOWN

    def to_metrics(self) -> ProcessMetrics:
        return ProcessMetrics(
            total_steps=self.total_steps,
            total_time=self.total_time,
            step_times=tuple(item.to_step_time(index + 1) for index, item in enumerate(self.step_times)),
        )


class DiagramDescriptionModel(BaseModel):
    model_config = ConfigDict(extra="allow")

    diagram: str
    type: str = "flow"

    def to_description(self) -> DiagramDescription:
        return DiagramDescription(diagram=self.diagram, type=self.type)


class OptimizeProcessRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_metrics: ProcessMetricsModel = Field(alias="originalMetrics")
    workflow_diagram: DiagramDescriptionModel = Field(alias="workflowDiagram")


def validate_recovered_payload(payload: dict[str, Any]) -> RecoveredResult:
    """Validate a decoded optimization payload into a ``RecoveredResult``."""

    return RecoveredPayloadModel.model_validate(payload).to_result()
