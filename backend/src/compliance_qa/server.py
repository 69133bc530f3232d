"""FastAPI server exposing chat, admin, and debug endpoints."""
from __future__ import annotations

import asyncio
import uuid
from datetime import datetime
from typing import Annotated, Any

from fastapi import Depends, FastAPI, File, Form, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import settings
from .errors import DocumentValidationError
from .models import DocumentRecord, QAFailure
from .services import Services, get_services

app = FastAPI(title="Compliance Document Q&A", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)
if settings.observability.enable_prometheus:
    app.mount("/metrics", make_asgi_app())

ServicesDep = Annotated[Services, Depends(get_services)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(CamelModel):
    query: str = Field(..., description="User question")
    session_id: str | None = Field(default=None, description="Conversation session identifier")


class CitationOut(CamelModel):
    title: str
    type: str
    relevance_score: float


class DebugOut(CamelModel):
    documents_found: int
    context_length: int
    prompt_length: int


class ChatResponse(CamelModel):
    response: str
    session_id: str
    context: list[CitationOut]
    debug: DebugOut


class DocumentOut(CamelModel):
    id: str
    title: str
    type: str
    tags: list[str]
    preview: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: DocumentRecord) -> DocumentOut:
        return cls(
            id=record.id,
            title=record.title,
            type=record.type.value,
            tags=record.tags,
            preview=record.preview,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    payload: dict[str, Any] = {"error": error}
    if details is not None:
        payload["details"] = details
    return JSONResponse(status_code=status_code, content=payload)


async def _answer(services: Services, query: str | None, session_id: str | None) -> Any:
    if not query or not query.strip():
        return _error(400, "Query parameter required")
    session_id = session_id or str(uuid.uuid4())
    async with services.agent.locks.hold_async(session_id):
        result = await asyncio.to_thread(services.agent.run, query, session_id)
    if isinstance(result, QAFailure):
        return _error(500, result.error, result.details)
    return ChatResponse(
        response=result.response,
        session_id=result.session_id,
        context=[
            CitationOut(title=c.title, type=c.type, relevance_score=c.relevance_score) for c in result.context
        ],
        debug=DebugOut(
            documents_found=result.debug.documents_found,
            context_length=result.debug.context_length,
            prompt_length=result.debug.prompt_length,
        ),
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/api/chat", response_model=ChatResponse)
async def chat(services: ServicesDep, query: str | None = None, sessionId: str | None = None) -> Any:  # noqa: N803
    return await _answer(services, query, sessionId)


@app.post("/api/chat", response_model=ChatResponse)
async def chat_post(payload: ChatRequest, services: ServicesDep) -> Any:
    return await _answer(services, payload.query, payload.session_id)


@app.post("/api/admin/documents")
async def upload_document(
    services: ServicesDep,
    title: Annotated[str | None, Form()] = None,
    type: Annotated[str | None, Form()] = None,  # noqa: A002
    tags: Annotated[str | None, Form()] = None,
    content: Annotated[str | None, Form()] = None,
    file: Annotated[UploadFile | None, File()] = None,
) -> Any:
    text = content
    if not (text and text.strip()) and file is not None:
        text = (await file.read()).decode("utf-8", errors="replace")
    try:
        result = await asyncio.to_thread(services.ingestor.upload, title, type, text, tags)
    except DocumentValidationError as exc:
        return _error(400, str(exc))
    except Exception as exc:  # noqa: BLE001
        return _error(500, "Failed to upload document", str(exc))
    document = result.document
    return {
        "success": True,
        "document": {
            "id": document.id,
            "title": document.title,
            "type": document.type.value,
            "tags": document.tags,
            "createdAt": document.created_at.isoformat(),
        },
        "storage": {
            "useBlobStore": result.content_backend.value == "blob",
            "indexed": result.indexed,
        },
    }


@app.get("/api/admin/documents")
async def list_documents(services: ServicesDep) -> Any:
    try:
        records = await asyncio.to_thread(services.ingestor.list_documents)
    except Exception as exc:  # noqa: BLE001
        return _error(500, "Failed to list documents", str(exc))
    documents = [DocumentOut.from_record(record).model_dump(by_alias=True, mode="json") for record in records]
    return {"success": True, "count": len(documents), "documents": documents}


@app.delete("/api/admin/documents/{doc_id}")
async def delete_document(doc_id: str, services: ServicesDep) -> Any:
    try:
        await asyncio.to_thread(services.ingestor.delete, doc_id)
    except Exception as exc:  # noqa: BLE001
        return _error(500, "Failed to delete document", str(exc))
    return {"success": True, "deleted": doc_id, "message": "Document deleted successfully"}


@app.get("/api/debug/documents")
async def debug_documents(services: ServicesDep) -> Any:
    records = await asyncio.to_thread(services.repository.list_documents)
    return {"total": len(records), "documents": [record.to_dict() for record in records]}


@app.get("/api/debug/documents/{doc_id}")
async def debug_document(doc_id: str, services: ServicesDep) -> Any:
    try:
        return await asyncio.to_thread(services.ingestor.inspect, doc_id)
    except Exception as exc:  # noqa: BLE001
        return _error(500, str(exc))


__all__ = ["app"]
