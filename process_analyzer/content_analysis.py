from __future__ import annotations

import re

from process_analyzer.records import DocumentRecord, TabularContent

_BLOCK_END = r"(?=\n\n|\n[A-Z]|\Z)"
_LIST_END = r"(?=\n\n\w|\n[A-Z]|\Z)"

# Patterns run in order; each emits the second group of its first match.
SECTION_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("Process Title", re.compile(r"(process|title|subject|workflow|procedure)[\s:]+([^\n]+)(?=\n|\Z)", re.I)),
    ("Process ID", re.compile(r"(process id|policy number|id|reference|document number)[\s:]+([^\n]+)(?=\n|\Z)", re.I)),
    ("Date", re.compile(r"(date|effective date|created on|last modified)[\s:]+([^\n]+)(?=\n|\Z)", re.I)),
    ("Updated by", re.compile(r"(updated by|author|responsible|created by|owner)[\s:]+([^\n]+)(?=\n|\Z)", re.I)),
    ("Description", re.compile(rf"(description|overview|summary|about)[\s:]+(.*?){_BLOCK_END}", re.I | re.S)),
    ("Objective", re.compile(rf"(objective|goal|purpose|aim|intent)[\s:]+(.*?){_BLOCK_END}", re.I | re.S)),
    ("Scope", re.compile(rf"(scope|applies to|coverage|boundary)[\s:]+(.*?){_BLOCK_END}", re.I | re.S)),
    (
        "Workflow Steps",
        re.compile(rf"(workflow|steps|procedure|process steps|activities|tasks)[\s:]+(.*?){_LIST_END}", re.I | re.S),
    ),
    (
        "Roles",
        re.compile(rf"(roles|responsibilities|participants|owner|stakeholders|actors)[\s:]+(.*?){_LIST_END}", re.I | re.S),
    ),
    ("Approval", re.compile(rf"(approval|sign-off|points|validation|verification)[\s:]+(.*?){_LIST_END}", re.I | re.S)),
    ("Inputs", re.compile(rf"(inputs|requirements|prerequisites|materials|resources)[\s:]+(.*?){_LIST_END}", re.I | re.S)),
    ("Outputs", re.compile(rf"(outputs|deliverables|results|products|outcomes)[\s:]+(.*?){_LIST_END}", re.I | re.S)),
    (
        "Dependencies",
        re.compile(rf"(dependencies|related|interactions|connections|relationships)[\s:]+(.*?){_LIST_END}", re.I | re.S),
    ),
    ("Challenges", re.compile(rf"(challenges|pain points|issues|problems|difficulties)[\s:]+(.*?){_LIST_END}", re.I | re.S)),
    (
        "Improvements",
        re.compile(
            rf"(improvements|opportunities|enhancement|optimization|recommendations)[\s:]+(.*?){_LIST_END}", re.I | re.S
        ),
    ),
    ("Notes", re.compile(rf"(notes|comments|additional|remarks|observations)[\s:]+(.*?){_LIST_END}", re.I | re.S)),
    ("Time Estimates", re.compile(rf"(time|duration|estimate|takes|timeline|schedule)[\s:]+(.*?){_LIST_END}", re.I | re.S)),
]

NUMBERED_SECTION_PATTERN = re.compile(r"\n\d+\.?\s+([^\n]+)[\n\s]+(.*?)(?=\n\d+\.?\s+|\n\n\d+|\n\n[A-Z]|\Z)", re.S)
BULLET_PATTERN = re.compile(r"\n[•\-*]\s+([^\n]+)")
CAPS_HEADER_PATTERN = re.compile(r"\n([A-Z][A-Z\s]{2,}[A-Z])[:\n]")
TIME_REFERENCE_PATTERN = re.compile(r"(\d+)\s*(minute|hour|day|week|min|hr|sec|second)s?", re.I)

KEY_COLUMN_PATTERN = re.compile(r"process|title|step|role|input|output|approval|description|time|duration|estimate", re.I)
TIME_COLUMN_PATTERN = re.compile(r"time|duration|estimate|minutes|hours|timeline", re.I)


def analyze_document(record: DocumentRecord) -> str:
    """Build advisory hint text for the generation prompt.

    The hints are heuristics only; downstream generation treats them as
    context, never as extracted facts.
    """

    analysis = "### Pre-analyzed Content Sections:\n\n"

    if len(record.file_names) > 1:
        analysis += f"Analysis of {len(record.file_names)} documents:\n"
        analysis += "".join(f"- {name}\n" for name in record.file_names)
        analysis += "\n"

    if isinstance(record.content, TabularContent):
        return analysis + _analyze_table(record.content)
    return analysis + _analyze_text(record.content.text)


def _analyze_text(content: str) -> str:
    analysis = ""

    for name, pattern in SECTION_PATTERNS:
        match = pattern.search(content)
        if match and match.group(2) and match.group(2).strip():
            analysis += f"#### {name}:\n{match.group(2).strip()}\n\n"

    numbered = [match.group(0).strip() for match in NUMBERED_SECTION_PATTERN.finditer(content)]
    if numbered:
        analysis += "#### Numbered Sections Found:\n"
        analysis += "".join(f"{section}\n\n" for section in numbered)

    bullets = [match.group(0).strip() for match in BULLET_PATTERN.finditer(content)]
    if bullets:
        analysis += "#### Bullet Points Found:\n"
        analysis += "".join(f"{bullet}\n" for bullet in bullets)
        analysis += "\n"

    if "|" in content or "+---" in content:
        analysis += "#### Table Structure Detected:\nInput contains table formatting. Will preserve table structure.\n\n"

    headers = [match.group(0).strip() for match in CAPS_HEADER_PATTERN.finditer(content)]
    if headers:
        analysis += "#### All-caps Headers Found:\n"
        analysis += "".join(f"{header}\n" for header in headers)
        analysis += "\n"

    time_references = [match.group(0).strip() for match in TIME_REFERENCE_PATTERN.finditer(content)]
    if time_references:
        analysis += "#### Time References Found:\n"
        analysis += "".join(f"{reference}\n" for reference in time_references)
        analysis += "\n"

    return analysis


def _sample_values(rows: list[dict], column: str, limit: int) -> list[str]:
    values = [row.get(column) for row in rows[:limit]]
    return [str(value) for value in values if value not in (None, "")]


def _analyze_table(content: TabularContent) -> str:
    headers = content.headers
    analysis = "#### Table Data Analysis:\n"
    analysis += f"{len(content.rows)} rows of data found with columns: {', '.join(headers) or 'unknown'}\n\n"

    key_columns = [header for header in headers if KEY_COLUMN_PATTERN.search(header)]
    if key_columns:
        analysis += f"#### Key Information Columns:\n{', '.join(key_columns)}\n\n"
        analysis += "#### Sample Values from Key Columns:\n"
        for column in key_columns:
            values = _sample_values(content.rows, column, 3)
            if values:
                analysis += f"{column}: {', '.join(values)}\n"
        analysis += "\n"

    time_columns = [header for header in headers if TIME_COLUMN_PATTERN.search(header)]
    if time_columns:
        analysis += "#### Time Estimate Information Found in Columns:\n"
        for column in time_columns:
            values = _sample_values(content.rows, column, 5)
            if values:
                analysis += f"{column}: {', '.join(values)}\n"
        analysis += "\n"

    return analysis
