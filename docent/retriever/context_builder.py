"""
Context Builder

Packs retrieved chunks into a token-bounded context window.
"""

import math
from typing import Sequence

from ..common.types import Chunk, ContextWindow

CHARS_PER_TOKEN = 4


def estimate_tokens(text: str) -> int:
    """Rough token estimate: 4 characters per token, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def format_context_piece(chunk: Chunk) -> str:
    """
    Serialize a chunk for the prompt:

        ## Title - Section > Subsection

        content

        **Source**: url
    """
    meta = chunk.metadata
    header = f"## {meta.title}"
    if meta.section:
        header += f" - {meta.section}"
    if meta.subsection:
        header += f" > {meta.subsection}"

    piece = f"{header}\n\n{chunk.content.strip()}"
    if meta.url:
        piece += f"\n\n**Source**: {meta.url}"
    return piece


def build_context(chunks: Sequence[Chunk], token_budget: int) -> ContextWindow:
    """
    Greedy rank-order packing.

    Chunks are taken in the given order until the next one would push the
    estimate past ``token_budget``; packing stops there, even if a later
    smaller chunk would fit. The count includes the joiners, so the
    estimate of the returned text never exceeds it.
    """
    budget = max(0, token_budget)
    used = []
    pieces = []
    total = 0

    for chunk in chunks:
        piece = format_context_piece(chunk)
        # "\n\n" joiner before every piece after the first
        tokens = estimate_tokens(piece) + (1 if used else 0)
        if total + tokens > budget:
            break
        used.append(chunk)
        pieces.append(piece)
        total += tokens

    return ContextWindow(
        used_chunks=used,
        token_count=total,
        budget=budget,
        text="\n\n".join(pieces),
    )
