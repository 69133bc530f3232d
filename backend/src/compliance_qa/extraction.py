"""Query-focused excerpt extraction for long documents.

Short documents are passed through whole so section numbers survive for
citation. Long documents are cut down to windows of lines around keyword and
section-marker hits, then hard-truncated; the truncation may land
mid-sentence.
"""
from __future__ import annotations

import logging
import re

SECTION_MARKER = re.compile(r"section\s+\d+|[A-Z]\.\d+", re.IGNORECASE)
ELISION = "\n...\n"
KEYWORD_SCORE = 10
SECTION_BONUS = 5

logger = logging.getLogger(__name__)


def query_keywords(query: str) -> list[str]:
    return [word for word in query.lower().split() if len(word) > 3]


def score_line(line: str, keywords: list[str]) -> int:
    lowered = line.lower()
    score = sum(KEYWORD_SCORE for keyword in keywords if keyword in lowered)
    if SECTION_MARKER.search(line):
        score += SECTION_BONUS
    return score


def _merge_runs(indices: list[int]) -> list[list[int]]:
    runs: list[list[int]] = []
    for idx in indices:
        if runs and idx == runs[-1][-1] + 1:
            runs[-1].append(idx)
        else:
            runs.append([idx])
    return runs


def extract_relevant_portion(
    content: str,
    query: str,
    *,
    full_text_limit: int = 8000,
    excerpt_limit: int = 6000,
    window: int = 10,
    log: logging.Logger | None = None,
) -> str:
    """Return ``content`` whole if short, otherwise the most query-relevant excerpt."""

    log = log or logger
    if len(content) <= full_text_limit:
        log.debug("Document fits (%d chars); returning full content", len(content))
        return content

    lines = content.split("\n")
    keywords = query_keywords(query)
    hits = [idx for idx, line in enumerate(lines) if score_line(line, keywords) > 0]
    if not hits:
        log.debug("No keyword or section hits; returning first %d chars", excerpt_limit)
        return content[:excerpt_limit]

    selected: set[int] = set()
    last = len(lines) - 1
    for idx in hits:
        selected.update(range(max(0, idx - window), min(last, idx + window) + 1))

    chunks = ["\n".join(lines[i] for i in run) for run in _merge_runs(sorted(selected))]
    excerpt = ELISION.join(chunks)[:excerpt_limit]
    log.debug("Extracted %d chars from %d hit lines", len(excerpt), len(hits))
    return excerpt
