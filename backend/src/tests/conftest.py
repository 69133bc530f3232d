"""Shared fixtures: in-memory stores, fake index, and a scripted chat model."""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.stores import InMemoryByteStore, InMemoryStore

from compliance_qa.config import AppSettings
from compliance_qa.models import ChatMessage, DocumentRecord, DocumentType, utcnow
from compliance_qa.services import Services, assemble_services
from compliance_qa.storage import DocumentRepository


class FakeIndex:
    """Similarity index double that returns scripted matches."""

    def __init__(self, matches: list[dict[str, Any]] | None = None) -> None:
        self.matches = matches or []
        self.inserted: dict[str, tuple[list[float], dict[str, Any]]] = {}
        self.queries: list[tuple[list[float], int]] = []

    def query(self, vector: list[float], top_k: int) -> list[dict[str, Any]]:
        self.queries.append((vector, top_k))
        return self.matches[:top_k]

    def insert(self, document_id: str, vector: list[float], metadata: dict[str, Any]) -> None:
        self.inserted[document_id] = (vector, metadata)

    def delete(self, document_id: str) -> None:
        self.inserted.pop(document_id, None)


class FakeGenerator:
    """Records every prompt and answers with ``reply`` (a value or a callable)."""

    def __init__(self, reply: Any = "Per Section 4.2, incidents must be reported within 24 hours.") -> None:
        self.reply = reply
        self.calls: list[dict[str, Any]] = []

    def generate(self, messages: list[ChatMessage], *, temperature: float, max_tokens: int) -> Any:
        self.calls.append({"messages": list(messages), "temperature": temperature, "max_tokens": max_tokens})
        if isinstance(self.reply, Exception):
            raise self.reply
        if callable(self.reply):
            return self.reply(messages)
        return self.reply

    @property
    def last_messages(self) -> list[ChatMessage]:
        return self.calls[-1]["messages"]


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings()


@pytest.fixture
def kv_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def blob_store() -> InMemoryByteStore:
    return InMemoryByteStore()


@pytest.fixture
def repository(kv_store: InMemoryStore, blob_store: InMemoryByteStore) -> DocumentRepository:
    return DocumentRepository(kv_store, blob_store)


@pytest.fixture
def embedder() -> DeterministicFakeEmbedding:
    return DeterministicFakeEmbedding(size=8)


@pytest.fixture
def add_document(repository: DocumentRepository) -> Callable[..., DocumentRecord]:
    def _add(
        doc_id: str,
        title: str,
        content: str | None,
        doc_type: DocumentType = DocumentType.POLICY,
    ) -> DocumentRecord:
        now = utcnow()
        record = DocumentRecord(
            id=doc_id,
            title=title,
            type=doc_type,
            tags=[],
            preview=(content or "")[:200] + "...",
            created_at=now,
            updated_at=now,
        )
        repository.put_metadata(record)
        if content is not None:
            repository.put_content(doc_id, content)
        return record

    return _add


@pytest.fixture
def make_services(
    settings: AppSettings,
    kv_store: InMemoryStore,
    blob_store: InMemoryByteStore,
) -> Callable[..., Services]:
    def _make(
        index: Any | None = None,
        generator: FakeGenerator | None = None,
        embedder: Any | None = None,
    ) -> Services:
        return assemble_services(
            settings,
            kv_store=kv_store,
            blob_store=blob_store,
            vector_index=index,
            embedder=embedder if embedder is not None else DeterministicFakeEmbedding(size=8),
            generator=generator or FakeGenerator(),
        )

    return _make
