"""Core domain models for the compliance Q&A service."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]


def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class DocumentType(str, Enum):
    POLICY = "policy"
    GUIDELINE = "guideline"
    AUDIT = "audit"


class ContentBackend(str, Enum):
    BLOB = "blob"
    KV = "kv"


@dataclass(slots=True)
class DocumentRecord:
    """Document metadata. Full content is stored separately."""

    id: str
    title: str
    type: DocumentType
    tags: list[str]
    preview: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "tags": list(self.tags),
            "preview": self.preview,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> DocumentRecord:
        return cls(
            id=payload["id"],
            title=payload["title"],
            type=DocumentType(payload["type"]),
            tags=list(payload.get("tags", [])),
            preview=payload.get("preview", ""),
            created_at=datetime.fromisoformat(payload["created_at"]),
            updated_at=datetime.fromisoformat(payload["updated_at"]),
        )


@dataclass(slots=True)
class SearchMatch:
    document_id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)
    content: str | None = None


@dataclass(slots=True)
class Candidate:
    document_id: str
    content: str
    score: float
    title: str
    type: str


@dataclass(slots=True)
class ChatMessage:
    role: Role
    content: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "content": self.content, "timestamp": self.timestamp.isoformat()}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ChatMessage:
        return cls(
            role=payload["role"],
            content=payload["content"],
            timestamp=datetime.fromisoformat(payload["timestamp"]),
        )


@dataclass(slots=True)
class Citation:
    title: str
    type: str
    relevance_score: float


@dataclass(slots=True)
class RetrievalResult:
    candidates: list[Candidate]
    source: Literal["similarity", "lexical", "none"]


@dataclass(slots=True)
class AssembledContext:
    text: str
    citations: list[Citation]


@dataclass(slots=True)
class QueryDiagnostics:
    documents_found: int
    context_length: int
    prompt_length: int


@dataclass(slots=True)
class QAResponse:
    response: str
    context: list[Citation]
    debug: QueryDiagnostics
    session_id: str


@dataclass(slots=True)
class QAFailure:
    error: str
    details: str
    session_id: str
