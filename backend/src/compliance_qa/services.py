"""Wires storage, retrieval, generation, and session components together."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from langchain_core.embeddings import Embeddings
from langchain_core.stores import BaseStore, ByteStore

from .config import AppSettings, get_settings
from .context import ContextAssembler
from .embeddings import ChromaVectorIndex, build_embedder
from .graph import ComplianceChatAgent, Generator
from .ingestion import DocumentIngestor
from .llm import LLMService, build_chat_model, configure_llm_cache
from .retrieval import HybridRetriever, LexicalFallbackScorer, SimilaritySearchClient
from .session import SessionStore
from .storage import DocumentRepository, FileBlobStore, SQLiteKeyValueStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    repository: DocumentRepository
    similarity: SimilaritySearchClient
    ingestor: DocumentIngestor
    sessions: SessionStore
    agent: ComplianceChatAgent


def assemble_services(
    settings: AppSettings,
    *,
    kv_store: BaseStore[str, str],
    blob_store: ByteStore | None,
    vector_index: object | None,
    embedder: Embeddings | None,
    generator: Generator,
) -> Services:
    """Build the component graph from already-constructed backends."""

    cfg = settings.retrieval
    repository = DocumentRepository(kv_store, blob_store)
    similarity = SimilaritySearchClient(vector_index, top_k=cfg.similarity_top_k)
    assembler = ContextAssembler(
        repository,
        dedupe_prefix_chars=cfg.dedupe_prefix_chars,
        full_text_limit=cfg.full_text_limit,
        excerpt_limit=cfg.excerpt_limit,
        window_lines=cfg.window_lines,
    )
    lexical = LexicalFallbackScorer(repository, limit=cfg.lexical_top_k, max_workers=cfg.lexical_workers)
    retriever = HybridRetriever(embedder, similarity, lexical, assembler)
    sessions = SessionStore(kv_store, max_messages=cfg.history_cap)
    agent = ComplianceChatAgent(
        retriever,
        assembler,
        generator,
        sessions,
        history_window=cfg.history_window,
        temperature=settings.model.temperature,
        max_tokens=settings.model.max_output_tokens,
    )
    ingestor = DocumentIngestor(repository, similarity, embedder)
    return Services(repository=repository, similarity=similarity, ingestor=ingestor, sessions=sessions, agent=agent)


def build_services(settings: AppSettings) -> Services:
    configure_llm_cache(settings)
    kv_store = SQLiteKeyValueStore(settings.paths.kv_path)
    blob_store = FileBlobStore(settings.paths.blob_dir) if settings.storage.use_blob_store else None
    embedder = build_embedder(settings)
    vector_index = None
    if settings.storage.use_vector_index:
        try:
            vector_index = ChromaVectorIndex(embedder, settings.paths.vector_dir, settings.storage.collection_name)
        except Exception:  # noqa: BLE001
            logger.exception("Vector index could not be opened; lexical search only")
    generator = LLMService(build_chat_model(settings), stream=settings.model.stream)
    return assemble_services(
        settings,
        kv_store=kv_store,
        blob_store=blob_store,
        vector_index=vector_index,
        embedder=embedder,
        generator=generator,
    )


@lru_cache
def get_services() -> Services:
    return build_services(get_settings())
