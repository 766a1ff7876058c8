from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from process_analyzer.config import DEFAULT_WORKDAY_HOURS
from process_analyzer.content_analysis import analyze_document
from process_analyzer.diagram_metrics import extract_diagram_metrics
from process_analyzer.llm_provider import GenerationClient, GenerationOptions
from process_analyzer.records import (
    DiagramDescription,
    DiagramMetrics,
    DocumentRecord,
    ProcessMetrics,
    TabularContent,
)

logger = logging.getLogger(__name__)

SAMPLE_ROW_LIMIT = 5
WORKFLOW_CONTENT_LIMIT = 5000
DOCUMENT_MAX_TOKENS = 4000
WORKFLOW_MAX_TOKENS = 3000
OPTIMIZATION_MAX_TOKENS = 2000

DIAGRAM_BLOCK_PATTERN = re.compile(r"```(?:mermaid)?\s*([\s\S]*?)\s*```")

DOCUMENT_SYSTEM_INSTRUCTIONS = (
    "You are a document formatting assistant that turns data from one or more files into a "
    "well-structured process document. Respond with rendered HTML organised in clear sections, fill every "
    "section with content taken from the input, and give an estimated completion time for each step."
)
WORKFLOW_SYSTEM_INSTRUCTIONS = (
    "You are a workflow diagram assistant that draws clear Mermaid.js flowcharts from process "
    "descriptions, following standard flowchart conventions."
)
OPTIMIZATION_SYSTEM_INSTRUCTIONS = (
    "You are a process optimization assistant. You propose specific, actionable changes that cut "
    "bureaucracy and reduce the number of steps and the total time a business process takes."
)

HTML_SHELL = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        table {{ width: 100%; border-collapse: collapse; margin-bottom: 20px; }}
        th, td {{ padding: 10px; text-align: left; vertical-align: top; border: 1px solid #ddd; }}
        th {{ background-color: #f2f2f2; font-weight: bold; }}
    </style>
</head>
<body>
{body}
</body>
</html>"""

DOCUMENT_SECTIONS = (
    "1. Process Title: name of process, process ID, date, updated by",
    "2. Process Overview: description, objective, scope",
    "3. Process Workflow: step-by-step workflow with time estimates, required attachments and forms",
    "4. Roles and Responsibilities: process owner(s) and participants",
    "5. Approval Steps: approval points",
    "6. Inputs and Outputs",
    "7. Dependencies and Interactions: related processes",
    "8. Current Challenges and Pain Points",
    "9. Improvement Opportunities",
    "10. Comments and Additional Notes",
    "11. Process Metrics: Total Steps and Total Est. Time",
)


@dataclass(frozen=True)
class GeneratedDocument:
    content: str
    format: str = "html"

    def to_dict(self) -> dict[str, str]:
        return {"content": self.content, "format": self.format}


@dataclass(frozen=True)
class GeneratedWorkflow:
    description: DiagramDescription
    metrics: DiagramMetrics

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = self.description.to_dict()
        payload["metrics"] = self.metrics.to_dict()
        return payload


def _sample_rows(content: TabularContent) -> str:
    lines = [f"Headers: {', '.join(content.headers)}", "", "Sample data:"]
    lines.extend(json.dumps(row, default=str) for row in content.rows[:SAMPLE_ROW_LIMIT])
    return "\n".join(lines) + "\n"


def _data_section(record: DocumentRecord, limit: int | None = None) -> str:
    if isinstance(record.content, TabularContent):
        return _sample_rows(record.content)

    text = record.content.text
    if limit is not None:
        text = text[:limit]

    if record.type != "pdf":
        return text

    section = f"PDF Content:\n\n{text}"
    if record.info:
        section += "\n\nPDF Metadata:" + "".join(f"\n- {key}: {value}" for key, value in record.info.items())
    if record.page_count:
        section += f"\n\nDocument has {record.page_count} pages."
    return section


def build_document_prompt(record: DocumentRecord) -> str:
    file_names = record.file_names
    multi_document = len(file_names) > 1
    title = "Integrated Process Document" if multi_document else "[Process Name] Process Document"

    parts = [
        "# Process Document Generation",
        "",
        "## Input Data Analysis Results",
        analyze_document(record),
        "## Instructions",
    ]
    if multi_document:
        parts.append(
            f"You are processing {len(file_names)} files together. Produce one unified process document that "
            "integrates all of them, lists the source files, and notes which file a detail came from."
        )
    else:
        parts.append("Produce a professional process document from the input data and the analysis above.")

    parts.extend(
        [
            f'Title the document "{title}" and lay it out as an HTML table with three columns '
            "(Section, Details, Additional information). Section titles are bold and span all columns.",
            "",
            "Sections:",
            *DOCUMENT_SECTIONS,
            "",
            "Number the workflow steps (Step 1, Step 2, ...) and put a time estimate such as "
            "'Estimated time: 30 min' in the details of every step. In Process Metrics, count the steps "
            "and sum the step times.",
            "The output must be valid, properly nested HTML that renders in a browser.",
            "",
            "## Input Data",
        ]
    )
    if multi_document:
        parts.append(f"This analysis combines {len(file_names)} documents: {', '.join(file_names)}")
    parts.append(_data_section(record))
    return "\n".join(parts)


def build_workflow_prompt(record: DocumentRecord) -> str:
    parts = [
        "Based on the following data, generate a detailed workflow diagram in Mermaid.js syntax.",
        "",
        "## Instructions",
        "Identify the process being described, then draw a new, clearer diagram of it that shows every "
        "step, approval stage, decision point and participant role, with a time estimate for each step.",
        "",
        "## Diagram rules",
        "1. Start with 'graph TD' on its own line.",
        "2. Begin with a Start node and finish with an endNode node.",
        "3. Use [text] for steps, {text} for decisions and -->|label| for labelled arrows (never ->).",
        "4. Put time estimates at the end of step labels in parentheses, e.g. 'Step 1: Review Document (30 min)'.",
        "5. Quote labels containing spaces and avoid HTML tags or <br> in labels.",
        "6. Use 'subgraph Title' ... 'end' to group steps by phase or department where useful.",
        "",
        "## Input Data",
        _data_section(record, limit=WORKFLOW_CONTENT_LIMIT),
    ]
    return "\n".join(parts)


def build_optimization_prompt(
    metrics: ProcessMetrics,
    workflow: DiagramDescription,
    redundant_groups: list[dict[str, Any]] | None = None,
) -> str:
    parts = [
        "# Process Optimization Task",
        "",
        "## Current Process Information:",
        f"- Total Steps: {metrics.total_steps}",
        f"- Estimated Total Time: {metrics.total_time}",
        f"- Detailed Step Times: {json.dumps([step.to_dict() for step in metrics.step_times])}",
        "",
        "## Current Workflow Diagram:",
        "```",
        workflow.diagram,
        "```",
    ]
    if redundant_groups:
        parts.extend(["", "## Possible Redundancies:"])
        for group in redundant_groups:
            names = ", ".join(step.step_name for step in group["steps"])
            parts.append(f"- {group['type']}: {names}. {group['suggestion']}")

    parts.extend(
        [
            "",
            "## Task",
            "Suggest concrete changes that remove unnecessary steps, consolidate approvals and reviews, "
            "automate manual work and run independent steps in parallel, while keeping required compliance "
            "and quality controls.",
            "",
            "## Required Output Format (JSON):",
            "```json",
            "{",
            '  "summary": "One or two sentences on the approach and its benefits",',
            '  "totalSteps": <number of steps in the optimized process>,',
            '  "totalTime": "Estimated total time of the optimized process",',
            '  "suggestions": [{"title": "...", "description": "...", "timeSaved": "..."}],',
            '  "stepTimes": [{"step": "1", "stepName": "...", "time": "..."}],',
            '  "workflow": "Optimized Mermaid.js diagram starting with graph TD"',
            "}",
            "```",
            "Respond with JSON in exactly this format.",
        ]
    )
    return "\n".join(parts)


def wrap_html(content: str) -> str:
    if "<!DOCTYPE html>" in content or "<html" in content.lower():
        return content
    return HTML_SHELL.format(body=content)


def extract_diagram_code(generated: str) -> str:
    match = DIAGRAM_BLOCK_PATTERN.search(generated)
    if match and match.group(1):
        return match.group(1).strip()
    return generated.strip()


def generate_formatted_document(
    record: DocumentRecord,
    client: GenerationClient,
    *,
    temperature: float | None = None,
) -> GeneratedDocument:
    generated = client.generate(
        build_document_prompt(record),
        DOCUMENT_SYSTEM_INSTRUCTIONS,
        GenerationOptions(temperature=temperature, max_output_tokens=DOCUMENT_MAX_TOKENS),
    )
    logger.info("Document generation with %s returned %d characters", client.name, len(generated))
    return GeneratedDocument(content=wrap_html(generated))


def generate_workflow(
    record: DocumentRecord,
    client: GenerationClient,
    *,
    temperature: float | None = None,
    workday_hours: int = DEFAULT_WORKDAY_HOURS,
) -> GeneratedWorkflow:
    generated = client.generate(
        build_workflow_prompt(record),
        WORKFLOW_SYSTEM_INSTRUCTIONS,
        GenerationOptions(temperature=temperature, max_output_tokens=WORKFLOW_MAX_TOKENS),
    )
    logger.info("Workflow generation with %s returned %d characters", client.name, len(generated))
    diagram = extract_diagram_code(generated)
    return GeneratedWorkflow(
        description=DiagramDescription(diagram=diagram),
        metrics=extract_diagram_metrics(diagram, workday_hours=workday_hours),
    )


def generate_optimization_text(
    metrics: ProcessMetrics,
    workflow: DiagramDescription,
    client: GenerationClient,
    *,
    redundant_groups: list[dict[str, Any]] | None = None,
    temperature: float | None = None,
) -> str:
    return client.generate(
        build_optimization_prompt(metrics, workflow, redundant_groups),
        OPTIMIZATION_SYSTEM_INSTRUCTIONS,
        GenerationOptions(temperature=temperature, max_output_tokens=OPTIMIZATION_MAX_TOKENS),
    )
