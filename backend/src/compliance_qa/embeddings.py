"""Embedding model + Chroma-backed similarity index."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from langchain_community.embeddings import HuggingFaceEmbeddings
from langchain_community.vectorstores import Chroma
from langchain_core.embeddings import Embeddings

from .config import AppSettings


def build_embedder(settings: AppSettings) -> Embeddings:
    return HuggingFaceEmbeddings(
        model_name=settings.model.embed_model,
        model_kwargs={"trust_remote_code": True},
        encode_kwargs={"normalize_embeddings": True},
    )


class ChromaVectorIndex:
    """Stores one vector per document and answers nearest-neighbour queries."""

    def __init__(self, embedder: Embeddings, vector_dir: Path, collection_name: str = "compliance_documents") -> None:
        self.vector_dir = Path(vector_dir)
        self.vector_dir.mkdir(parents=True, exist_ok=True)
        self.store = Chroma(
            collection_name=collection_name,
            embedding_function=embedder,
            persist_directory=str(self.vector_dir),
            collection_metadata={"hnsw:space": "cosine"},
        )

    def insert(self, document_id: str, vector: list[float], metadata: dict[str, Any]) -> None:
        self.store._collection.upsert(  # noqa: SLF001
            ids=[document_id],
            embeddings=[vector],
            metadatas=[self._filter_metadata(metadata)],
        )

    def query(self, vector: list[float], top_k: int) -> list[dict[str, Any]]:
        count = self.store._collection.count()  # noqa: SLF001
        if not count:
            return []
        response = self.store._collection.query(  # noqa: SLF001
            query_embeddings=[vector],
            n_results=min(top_k, count),
            include=["metadatas", "distances"],
        )
        ids = response.get("ids", [[]])[0]
        distances = response.get("distances", [[]])[0]
        metadatas = response.get("metadatas", [[]])[0]
        return [
            {"id": doc_id, "score": 1.0 - float(distance), "metadata": metadata or {}}
            for doc_id, distance, metadata in zip(ids, distances, metadatas, strict=True)
        ]

    def delete(self, document_id: str) -> None:
        self.store._collection.delete(ids=[document_id])  # noqa: SLF001

    @staticmethod
    def _filter_metadata(raw: dict[str, Any] | None) -> dict[str, Any]:
        allowed_types = (str, int, float, bool)
        cleaned: dict[str, Any] = {}
        if not raw:
            return cleaned
        for key, value in raw.items():
            if isinstance(value, allowed_types):
                cleaned[key] = value
        return cleaned
