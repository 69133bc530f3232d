"""Hybrid retrieval: similarity search with a deterministic lexical fallback."""
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from langchain_core.embeddings import Embeddings

from .context import ContextAssembler
from .models import DocumentRecord, RetrievalResult, SearchMatch
from .observability import CANDIDATES_PER_QUERY, RETRIEVAL_FALLBACKS
from .storage import DocumentRepository


class MalformedResultError(ValueError):
    """The similarity index answered with a shape we cannot read."""


def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def coerce_matches(raw: Any) -> list[SearchMatch]:
    """Normalise the known index result shapes into ``SearchMatch`` objects."""

    if isinstance(raw, Mapping) or hasattr(raw, "matches"):
        raw = _field(raw, "matches")
    if raw is None or isinstance(raw, (str, bytes)) or not isinstance(raw, Sequence):
        raise MalformedResultError(f"Unexpected similarity result type: {type(raw).__name__}")
    matches: list[SearchMatch] = []
    for item in raw:
        document_id = _field(item, "id")
        score = _field(item, "score")
        if document_id is None or not isinstance(score, (int, float)):
            raise MalformedResultError(f"Match is missing id or score: {item!r}")
        metadata = _field(item, "metadata") or {}
        matches.append(SearchMatch(document_id=str(document_id), score=float(score), metadata=dict(metadata)))
    return matches


class SimilaritySearchClient:
    """Capability-checked wrapper around an optional vector index.

    The index may be missing or broken at any call; ``search`` then returns
    ``None`` instead of raising so the caller can fall back.
    """

    def __init__(self, index: Any | None, top_k: int = 3, logger: logging.Logger | None = None) -> None:
        self.index = index
        self.top_k = top_k
        self.logger = logger or logging.getLogger(__name__)

    def is_available(self) -> bool:
        return self.index is not None and callable(getattr(self.index, "query", None))

    def can_insert(self) -> bool:
        return self.index is not None and callable(getattr(self.index, "insert", None))

    def search(self, vector: Sequence[float]) -> list[SearchMatch] | None:
        if not self.is_available():
            self.logger.info("Similarity index unavailable")
            return None
        try:
            matches = coerce_matches(self.index.query(list(vector), self.top_k))[: self.top_k]
        except Exception:  # noqa: BLE001
            self.logger.warning("Similarity search failed; treating index as unavailable", exc_info=True)
            return None
        self.logger.info("Similarity search found %d matches", len(matches))
        return matches

    def insert(self, document_id: str, vector: Sequence[float], metadata: dict[str, Any]) -> bool:
        if not self.can_insert():
            self.logger.warning("Similarity index not available; %s will not be indexed", document_id)
            return False
        try:
            self.index.insert(document_id, list(vector), metadata)
        except Exception:  # noqa: BLE001
            self.logger.exception("Vector indexing failed for %s", document_id)
            return False
        return True

    def remove(self, document_id: str) -> bool:
        if self.index is None or not callable(getattr(self.index, "delete", None)):
            return False
        try:
            self.index.delete(document_id)
        except Exception:  # noqa: BLE001
            self.logger.warning("Could not remove %s from the similarity index", document_id, exc_info=True)
            return False
        return True


class LexicalFallbackScorer:
    """Ranks every stored document by raw query-term occurrence counts."""

    def __init__(
        self,
        repository: DocumentRepository,
        limit: int = 2,
        max_workers: int = 4,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repository = repository
        self.limit = limit
        self.max_workers = max_workers
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def score(content: str, terms: list[str]) -> int:
        lowered = content.lower()
        return sum(lowered.count(term) for term in terms)

    def _score_document(self, record: DocumentRecord, terms: list[str]) -> SearchMatch | None:
        try:
            content = self.repository.get_content(record.id)
            if not content:
                self.logger.info("Could not get content for %s", record.id)
                return None
            score = self.score(content, terms)
        except Exception:  # noqa: BLE001
            self.logger.exception("Error scoring document %s", record.id)
            return None
        self.logger.debug("Lexical score for %s (%s): %d", record.id, record.title, score)
        if score <= 0:
            return None
        return SearchMatch(
            document_id=record.id,
            score=float(score),
            metadata={"title": record.title, "type": record.type.value},
            content=content,
        )

    def rank(self, query: str) -> list[SearchMatch]:
        terms = query.lower().split()
        records = self.repository.list_documents()
        self.logger.info("Lexical fallback scanning %d documents", len(records))
        if not terms or not records:
            return []
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            # map() yields in submission order, so ranking never depends on completion order
            scored = [match for match in pool.map(lambda rec: self._score_document(rec, terms), records) if match]
        scored.sort(key=lambda match: match.score, reverse=True)
        results = scored[: self.limit]
        self.logger.info("Lexical fallback returned %d results", len(results))
        return results


class HybridRetriever:
    """Runs similarity search first and the lexical scorer when it yields nothing usable."""

    def __init__(
        self,
        embedder: Embeddings | None,
        similarity: SimilaritySearchClient,
        lexical: LexicalFallbackScorer,
        assembler: ContextAssembler,
        logger: logging.Logger | None = None,
    ) -> None:
        self.embedder = embedder
        self.similarity = similarity
        self.lexical = lexical
        self.assembler = assembler
        self.logger = logger or logging.getLogger(__name__)

    def retrieve(self, query: str) -> RetrievalResult:
        if self.similarity.is_available() and self.embedder is not None:
            vector = self.embedder.embed_query(query)
            matches = self.similarity.search(vector)
            if matches is not None:
                candidates = self.assembler.collect(matches)
                if candidates:
                    CANDIDATES_PER_QUERY.observe(len(candidates))
                    return RetrievalResult(candidates=candidates, source="similarity")
                RETRIEVAL_FALLBACKS.labels("empty").inc()
            else:
                RETRIEVAL_FALLBACKS.labels("unavailable").inc()
        else:
            RETRIEVAL_FALLBACKS.labels("unavailable").inc()

        self.logger.info("Falling back to lexical search")
        candidates = self.assembler.collect(self.lexical.rank(query))
        CANDIDATES_PER_QUERY.observe(len(candidates))
        return RetrievalResult(candidates=candidates, source="lexical" if candidates else "none")
