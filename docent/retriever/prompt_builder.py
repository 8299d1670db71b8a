"""
Prompt Builder

Turns (query, context window) into a system/user prompt pair plus the
citation list the answer will carry.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Sequence

from ..common.types import Chunk, Citation, ContextWindow, PromptBundle, ValidationReport

logger = logging.getLogger("docent.retriever.prompt_builder")


@dataclass
class PromptOptions:
    prefer_steps: bool = False
    include_references: bool = True


NOT_FOUND_SENTENCE = (
    "I couldn't find a documented answer in the {product} docs. "
    "Please consult {vendor} support or check related documentation."
)

SYSTEM_PROMPT = """You are a {product} expert assistant. Your role is to provide accurate, helpful information about {product} based on the provided documentation context.

## Response Structure Requirements

You MUST follow this exact structure for every response:

### 1. Summary (Required)
- Start with exactly one sentence that summarizes the answer
- Keep it concise and directly address the user's question

### 2. Overview (Required)
- Provide 2-4 sentences explaining the feature or concept
- Give context about when and why it's used

### 3. {detail_heading} (Required)
{detail_rules}
{references_section}
## Important Rules

1. Only use information from the provided context. Do not add information from general knowledge.
2. If the context doesn't contain sufficient information, state: "{not_found}"
3. Always cite sources using the exact URLs provided in the context.
4. Use Markdown formatting with proper headings (##, ###) and lists.

## Documentation Context

Each excerpt below ends with its **Source** URL.

{context}
"""

STEP_RULES = """- Provide clear, numbered step-by-step instructions
- Each step should be actionable and specific
- Include navigation paths (e.g., "Navigate to System > Security > Roles")
- Mention any prerequisites or permissions needed"""

DETAIL_RULES = """- Provide detailed information about the topic
- Include key concepts and best practices
- Explain any configuration options or settings"""

REFERENCES_SECTION = """
### 4. References (Required)
- End with a "References" section
- Format each entry as: "- [Page Title](URL)"
- Only include URLs from the provided context
"""

STEP_REQUEST = "Please answer with numbered step-by-step instructions."

_NUMBERED_RE = re.compile(r"^\s*\d+\.", re.MULTILINE)
_LINK_RE = re.compile(r"\[[^\]]+\]\([^)]+\)")


def extract_citations(chunks: Sequence[Chunk]) -> List[Citation]:
    """One citation per chunk, deduplicated by URL in first-seen order."""
    seen = set()
    citations = []
    for chunk in chunks:
        url = chunk.metadata.url
        if not url or url in seen:
            continue
        seen.add(url)
        citations.append(Citation(title=chunk.metadata.title or url, url=url))
    return citations


class PromptBuilder:
    """Builds prompts in the answer structure the response parser expects."""

    def __init__(self, product_name: str = "PowerSchool PSSIS-Admin"):
        self.product_name = product_name
        self.vendor_name = product_name.split()[0]

    @property
    def not_found_sentence(self) -> str:
        return NOT_FOUND_SENTENCE.format(product=self.product_name, vendor=self.vendor_name)

    def build_prompt(
        self,
        query: str,
        context_window: ContextWindow,
        options: PromptOptions = None,
    ) -> PromptBundle:
        options = options or PromptOptions()

        system_prompt = SYSTEM_PROMPT.format(
            product=self.product_name,
            detail_heading=(
                "Step-by-Step Instructions" if options.prefer_steps else "Detailed Information"
            ),
            detail_rules=STEP_RULES if options.prefer_steps else DETAIL_RULES,
            references_section=REFERENCES_SECTION if options.include_references else "",
            not_found=self.not_found_sentence,
            context=context_window.text or "(no documentation excerpts available)",
        )

        user_prompt = query.strip()
        if options.prefer_steps:
            user_prompt = f"{user_prompt}\n\n{STEP_REQUEST}"

        return PromptBundle(
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            citations=extract_citations(context_window.used_chunks),
        )

    def validate_structure(self, text: str, options: PromptOptions = None) -> ValidationReport:
        """Advisory check that a response follows the requested structure."""
        options = options or PromptOptions()
        lower = text.lower()
        issues = []

        if "summary" not in lower:
            issues.append("Missing Summary section")
        if "overview" not in lower:
            issues.append("Missing Overview section")
        if options.prefer_steps and not (_NUMBERED_RE.search(text) or "step" in lower):
            issues.append("Missing numbered steps when step-by-step format was requested")
        if options.include_references and not ("references" in lower or _LINK_RE.search(text)):
            issues.append("Missing References section")
        if "#" not in text:
            issues.append("Missing markdown headings")

        if issues:
            logger.warning("Response structure issues: %s", "; ".join(issues))
        return ValidationReport(valid=not issues, issues=issues)
