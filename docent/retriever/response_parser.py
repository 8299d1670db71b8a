"""
Response Parser

Splits raw LLM output into summary / answer / steps and runs advisory
quality checks. Validation never raises; callers log the issues.
"""

import logging
import re
from typing import List, Optional

from ..common.types import GeneratedAnswer, ValidationReport

logger = logging.getLogger("docent.retriever.response_parser")

SUMMARY_FALLBACK_CHARS = 100
MIN_RESPONSE_LENGTH = 50

_HEADING_RE = re.compile(r"^#{1,6}(\s|$)")
_BULLET_RE = re.compile(r"^[-*+](\s|$)")
_STEP_RE = re.compile(r"^\s*\d+\.\s*(.*)$")
_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")

PLACEHOLDERS = ["TODO", "TBD", "[placeholder]"]
ERROR_INDICATORS = ["I cannot", "I don't know", "error occurred"]


def _is_summary_candidate(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return False
    if _HEADING_RE.match(stripped) or _BULLET_RE.match(stripped):
        return False
    return True


def parse_steps(text: str) -> List[str]:
    """Every ``N.`` numbered line, in document order, without its number."""
    steps = []
    for line in text.split("\n"):
        match = _STEP_RE.match(line)
        if match:
            step = match.group(1).strip()
            if step:
                steps.append(step)
    return steps


def clean(raw: str) -> str:
    """Normalize line endings to \\n and collapse 3+ newlines to 2."""
    text = raw.replace("\r\n", "\n").replace("\r", "\n")
    return _EXCESS_NEWLINES_RE.sub("\n\n", text).strip()


def parse(raw: str) -> GeneratedAnswer:
    text = clean(raw)
    lines = text.split("\n")

    summary_index: Optional[int] = None
    for i, line in enumerate(lines):
        if _is_summary_candidate(line):
            summary_index = i
            break

    if summary_index is None:
        summary = text[:SUMMARY_FALLBACK_CHARS] + "..." if text else ""
        answer = text
    else:
        summary = lines[summary_index].strip()
        answer = "\n".join(lines[summary_index:]).strip()

    steps = parse_steps(text)
    return GeneratedAnswer(
        raw_text=raw,
        summary=summary,
        answer=answer,
        steps=steps or None,
    )


def validate(raw: str, min_length: int = MIN_RESPONSE_LENGTH) -> ValidationReport:
    issues = []
    lower = raw.lower()

    if len(raw) < min_length:
        issues.append(f"Response too short ({len(raw)} chars, minimum {min_length})")
    if "#" not in raw:
        issues.append("Response lacks markdown headings")
    for placeholder in PLACEHOLDERS:
        if placeholder.lower() in lower:
            issues.append(f"Response contains placeholder text: {placeholder}")
    for indicator in ERROR_INDICATORS:
        if indicator.lower() in lower:
            issues.append(f"Response indicates generation issues: {indicator}")

    return ValidationReport(valid=not issues, issues=issues)


class ResponseParser:
    """Thin object wrapper so the pipeline can take a parser collaborator."""

    def __init__(self, min_length: int = MIN_RESPONSE_LENGTH):
        self.min_length = min_length

    def parse(self, raw: str) -> GeneratedAnswer:
        return parse(raw)

    def validate(self, raw: str) -> ValidationReport:
        report = validate(raw, self.min_length)
        if not report.valid:
            logger.warning("Response validation issues: %s", "; ".join(report.issues))
        return report

    def clean(self, raw: str) -> str:
        return clean(raw)
