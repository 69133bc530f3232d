"""Document upload, validation, indexing, and admin operations."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from langchain_community.document_loaders import PyPDFLoader, TextLoader
from langchain_core.embeddings import Embeddings

from .errors import DocumentValidationError
from .models import ContentBackend, DocumentRecord, DocumentType, utcnow
from .retrieval import SimilaritySearchClient
from .storage import DocumentRepository

MIN_TITLE_LENGTH = 3
MIN_CONTENT_LENGTH = 10
MAX_CONTENT_LENGTH = 100_000
PREVIEW_CHARS = 200


@dataclass(slots=True)
class UploadResult:
    document: DocumentRecord
    content_backend: ContentBackend
    indexed: bool


def parse_tags(raw: str | list[str] | None) -> list[str]:
    if raw is None:
        return []
    items = raw.split(",") if isinstance(raw, str) else raw
    return [tag.strip() for tag in items if tag and tag.strip()]


def load_text(path: Path) -> str:
    """Read a document from disk as plain text."""

    if path.suffix.lower() == ".pdf":
        loader = PyPDFLoader(str(path))
    else:
        loader = TextLoader(str(path), autodetect_encoding=True)
    return "\n".join(doc.page_content for doc in loader.load())


class DocumentIngestor:
    """Validates and stores uploaded documents and indexes them for similarity search."""

    def __init__(
        self,
        repository: DocumentRepository,
        similarity: SimilaritySearchClient,
        embedder: Embeddings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repository = repository
        self.similarity = similarity
        self.embedder = embedder
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def validate(title: str | None, doc_type: str | None, content: str | None) -> tuple[str, DocumentType, str]:
        title = (title or "").strip()
        if len(title) < MIN_TITLE_LENGTH:
            raise DocumentValidationError(f"Title must be at least {MIN_TITLE_LENGTH} characters long")
        try:
            parsed_type = DocumentType(doc_type)
        except ValueError as exc:
            raise DocumentValidationError("Valid document type is required") from exc
        content = (content or "").strip()
        if len(content) < MIN_CONTENT_LENGTH:
            raise DocumentValidationError(f"Document must contain at least {MIN_CONTENT_LENGTH} characters")
        if len(content) > MAX_CONTENT_LENGTH:
            raise DocumentValidationError(f"Document exceeds maximum length of {MAX_CONTENT_LENGTH:,} characters")
        return title, parsed_type, content

    def upload(
        self,
        title: str | None,
        doc_type: str | None,
        content: str | None,
        tags: str | list[str] | None = None,
    ) -> UploadResult:
        title, parsed_type, content = self.validate(title, doc_type, content)
        now = utcnow()
        record = DocumentRecord(
            id=str(uuid.uuid4()),
            title=title,
            type=parsed_type,
            tags=parse_tags(tags),
            preview=content[:PREVIEW_CHARS] + "...",
            created_at=now,
            updated_at=now,
        )

        metadata_written = False
        try:
            self.repository.put_metadata(record)
            metadata_written = True
            backend = self.repository.put_content(record.id, content)
        except Exception:
            if metadata_written:
                self._rollback(record.id)
            raise

        indexed = self._index(record, content)
        self.logger.info("Stored document %s (%s) in %s; indexed=%s", record.id, record.title, backend.value, indexed)
        return UploadResult(document=record, content_backend=backend, indexed=indexed)

    def _rollback(self, document_id: str) -> None:
        try:
            self.repository.delete(document_id)
        except Exception:  # noqa: BLE001
            self.logger.exception("Cleanup failed for document %s", document_id)

    def _index(self, record: DocumentRecord, content: str) -> bool:
        if self.embedder is None or not self.similarity.can_insert():
            self.logger.warning("Similarity index not available; %s will not be indexed", record.id)
            return False
        try:
            vector = self.embedder.embed_query(content)
        except Exception:  # noqa: BLE001
            self.logger.exception("Embedding failed for %s; document stored without index entry", record.id)
            return False
        metadata = {"title": record.title, "type": record.type.value, "tags": ",".join(record.tags)}
        return self.similarity.insert(record.id, vector, metadata)

    def list_documents(self) -> list[DocumentRecord]:
        return self.repository.list_documents()

    def delete(self, document_id: str) -> None:
        self.repository.delete(document_id)
        self.similarity.remove(document_id)
        self.logger.info("Deleted document %s", document_id)

    def inspect(self, document_id: str) -> dict[str, Any]:
        return self.repository.inspect(document_id)
