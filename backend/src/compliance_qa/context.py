"""Candidate collection, deduplication, and context rendering."""
from __future__ import annotations

import logging
from collections.abc import Iterable

from .extraction import extract_relevant_portion
from .models import AssembledContext, Candidate, Citation, SearchMatch
from .storage import DocumentRepository

DOCUMENT_BLOCK = """
=== POLICY DOCUMENT: {title} ===
TYPE: {type}

{excerpt}

=== END DOCUMENT ===

"""


class ContextAssembler:
    """Turns ranked search matches into a rendered context block and citations."""

    def __init__(
        self,
        repository: DocumentRepository,
        *,
        dedupe_prefix_chars: int = 200,
        full_text_limit: int = 8000,
        excerpt_limit: int = 6000,
        window_lines: int = 10,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repository = repository
        self.dedupe_prefix_chars = dedupe_prefix_chars
        self.full_text_limit = full_text_limit
        self.excerpt_limit = excerpt_limit
        self.window_lines = window_lines
        self.logger = logger or logging.getLogger(__name__)

    def collect(self, matches: Iterable[SearchMatch]) -> list[Candidate]:
        """Fetch content for each match in rank order, dropping missing and duplicate documents.

        Duplicates are detected on a fixed-length content prefix only, so two
        documents that share an opening but differ later are treated as one.
        """

        seen_prefixes: set[str] = set()
        candidates: list[Candidate] = []
        for match in matches:
            content = match.content if match.content is not None else self.repository.get_content(match.document_id)
            if not content:
                self.logger.info("No content available for %s; dropping candidate", match.document_id)
                continue
            prefix = content[: self.dedupe_prefix_chars]
            if prefix in seen_prefixes:
                self.logger.info("Skipping duplicate document %s", match.document_id)
                continue
            seen_prefixes.add(prefix)
            candidates.append(
                Candidate(
                    document_id=match.document_id,
                    content=content,
                    score=match.score,
                    title=str(match.metadata.get("title", "Untitled")),
                    type=str(match.metadata.get("type", "unknown")),
                )
            )
        self.logger.info("%d unique documents after deduplication", len(candidates))
        return candidates

    def render(self, candidates: list[Candidate], query: str) -> AssembledContext:
        blocks: list[str] = []
        citations: list[Citation] = []
        for candidate in candidates:
            excerpt = extract_relevant_portion(
                candidate.content,
                query,
                full_text_limit=self.full_text_limit,
                excerpt_limit=self.excerpt_limit,
                window=self.window_lines,
                log=self.logger,
            )
            self.logger.debug("Including %d chars from %s", len(excerpt), candidate.title)
            blocks.append(DOCUMENT_BLOCK.format(title=candidate.title, type=candidate.type, excerpt=excerpt))
            citations.append(Citation(title=candidate.title, type=candidate.type, relevance_score=candidate.score))
        text = "".join(blocks)
        if candidates:
            self.logger.info("Context built from %d documents (%d chars)", len(candidates), len(text))
        else:
            self.logger.warning("No documents found for query")
        return AssembledContext(text=text, citations=citations)
