from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Union

DOCUMENT_TYPES = {"pdf", "docx", "csv", "excel", "text", "error"}
TABULAR_TYPES = {"csv", "excel"}
TEXT_TYPES = {"pdf", "docx", "text"}

NOT_SPECIFIED = "Not specified"
UNKNOWN = "Unknown"


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class TabularContent:
    """Rows keyed by ``headers``; header order is the column order."""

    rows: list[dict[str, Any]]
    headers: list[str]


Content = Union[TextContent, TabularContent]


@dataclass(frozen=True)
class DocumentRecord:
    content: Content
    type: str
    parsed: bool
    error: str | None = None
    file_name: str | None = None
    file_names: list[str] = field(default_factory=list)
    structured_data: dict[str, Any] | None = None
    page_count: int | None = None
    info: dict[str, Any] | None = None
    sheet_names: list[str] | None = None
    messages: list[Any] | None = None
    note: str | None = None

    @property
    def is_tabular(self) -> bool:
        return isinstance(self.content, TabularContent)

    @property
    def headers(self) -> list[str] | None:
        if isinstance(self.content, TabularContent):
            return self.content.headers
        return None

    @property
    def text(self) -> str | None:
        if isinstance(self.content, TextContent):
            return self.content.text
        return None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": self.type,
            "parsed": self.parsed,
        }
        if isinstance(self.content, TabularContent):
            payload["content"] = [dict(row) for row in self.content.rows]
            payload["headers"] = list(self.content.headers)
        else:
            payload["content"] = self.content.text
        optional = {
            "error": self.error,
            "fileName": self.file_name,
            "fileNames": self.file_names or None,
            "structuredData": self.structured_data,
            "pageCount": self.page_count,
            "info": self.info,
            "sheetNames": self.sheet_names,
            "messages": self.messages,
            "note": self.note,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        return payload


def failed_record(document_type: str, diagnostic: str, error: str, file_name: str | None = None) -> DocumentRecord:
    return DocumentRecord(
        content=TextContent(diagnostic or f"Failed to parse document: {error}"),
        type=document_type,
        parsed=False,
        error=error or diagnostic,
        file_name=file_name,
    )


@dataclass(frozen=True)
class StepTime:
    step: str
    step_name: str
    time: str = NOT_SPECIFIED

    def to_dict(self) -> dict[str, str]:
        return {"step": self.step, "stepName": self.step_name, "time": self.time}

    @classmethod
    def from_dict(cls, payload: Any, position: int) -> "StepTime":
        if not isinstance(payload, dict):
            return cls(step=str(position), step_name=str(payload), time=NOT_SPECIFIED)
        step = payload.get("step")
        step_name = payload.get("stepName") or payload.get("step_name") or payload.get("name")
        time_value = payload.get("time")
        return cls(
            step=str(step) if step not in (None, "") else str(position),
            step_name=str(step_name) if step_name else f"Step {position}",
            time=str(time_value).strip() if time_value not in (None, "") else NOT_SPECIFIED,
        )


def placeholder_step(position: int, prefix: str = "Step") -> StepTime:
    return StepTime(step=str(position), step_name=f"{prefix} {position}", time=NOT_SPECIFIED)


@dataclass(frozen=True)
class ProcessMetrics:
    total_steps: int = 0
    total_time: str = UNKNOWN
    step_times: tuple[StepTime, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalSteps": self.total_steps,
            "totalTime": self.total_time,
            "stepTimes": [step.to_dict() for step in self.step_times],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "ProcessMetrics":
        if not isinstance(payload, dict):
            return cls()
        try:
            total_steps = max(0, int(payload.get("totalSteps") or 0))
        except (TypeError, ValueError):
            total_steps = 0
        raw_steps = payload.get("stepTimes") or []
        if not isinstance(raw_steps, list):
            raw_steps = []
        return cls(
            total_steps=total_steps,
            total_time=str(payload.get("totalTime") or UNKNOWN),
            step_times=tuple(StepTime.from_dict(item, index + 1) for index, item in enumerate(raw_steps)),
        )


@dataclass(frozen=True)
class DiagramMetrics:
    total_steps: int = 0
    total_time: str = UNKNOWN
    step_times: tuple[StepTime, ...] = ()
    time_estimates: tuple[str, ...] = ()

    def to_process_metrics(self) -> ProcessMetrics:
        return ProcessMetrics(
            total_steps=self.total_steps,
            total_time=self.total_time,
            step_times=self.step_times,
        )

    def to_dict(self) -> dict[str, Any]:
        payload = self.to_process_metrics().to_dict()
        payload["timeEstimates"] = list(self.time_estimates)
        return payload


@dataclass(frozen=True)
class DiagramDescription:
    diagram: str
    type: str = "flow"

    def to_dict(self) -> dict[str, str]:
        return {"diagram": self.diagram, "type": self.type}


@dataclass(frozen=True)
class Suggestion:
    title: str
    description: str
    time_saved: str | None = None

    def to_dict(self) -> dict[str, str]:
        payload = {"title": self.title, "description": self.description}
        if self.time_saved is not None:
            payload["timeSaved"] = self.time_saved
        return payload


@dataclass(frozen=True)
class RecoveredResult:
    """Best-effort structured view of generated optimization text. Every field is optional."""

    summary: str | None = None
    total_steps: int | None = None
    total_time: str | None = None
    suggestions: tuple[Suggestion, ...] | None = None
    step_times: tuple[StepTime, ...] | None = None
    workflow: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.summary is not None:
            payload["summary"] = self.summary
        if self.total_steps is not None:
            payload["totalSteps"] = self.total_steps
        if self.total_time is not None:
            payload["totalTime"] = self.total_time
        if self.suggestions is not None:
            payload["suggestions"] = [item.to_dict() for item in self.suggestions]
        if self.step_times is not None:
            payload["stepTimes"] = [item.to_dict() for item in self.step_times]
        if self.workflow is not None:
            payload["workflow"] = self.workflow
        return payload


@dataclass(frozen=True)
class OptimizedProcess:
    summary: str
    suggestions: tuple[Suggestion, ...]
    metrics: ProcessMetrics
    workflow_diagram: DiagramDescription
    time_savings_percent: int
    provider: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "suggestions": [item.to_dict() for item in self.suggestions],
            "metrics": self.metrics.to_dict(),
            "workflowDiagram": self.workflow_diagram.to_dict(),
            "timeSavingsPercent": self.time_savings_percent,
            "provider": self.provider,
        }
