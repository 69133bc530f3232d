from pathlib import Path

import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding

from compliance_qa.embeddings import ChromaVectorIndex
from compliance_qa.retrieval import SimilaritySearchClient


@pytest.fixture
def fake_embedder() -> DeterministicFakeEmbedding:
    return DeterministicFakeEmbedding(size=8)


@pytest.fixture
def index(tmp_path: Path, fake_embedder) -> ChromaVectorIndex:
    return ChromaVectorIndex(fake_embedder, tmp_path / "vectors", collection_name="test_documents")


def test_empty_collection_returns_no_matches(index, fake_embedder):
    assert index.query(fake_embedder.embed_query("anything"), 3) == []
    assert SimilaritySearchClient(index).search(fake_embedder.embed_query("anything")) == []


def test_insert_and_query_by_cosine_similarity(index, fake_embedder):
    client = SimilaritySearchClient(index)
    privacy = fake_embedder.embed_query("Data Privacy Policy")
    travel = fake_embedder.embed_query("Travel Guideline")

    assert client.insert("d1", privacy, {"title": "Data Privacy Policy", "type": "policy", "tags": ""}) is True
    assert client.insert("d2", travel, {"title": "Travel Guideline", "type": "guideline", "tags": "travel"}) is True

    matches = client.search(privacy)

    assert [match.document_id for match in matches] == ["d1", "d2"]
    assert matches[0].score == pytest.approx(1.0, abs=1e-4)
    assert matches[1].score < matches[0].score
    assert matches[0].metadata == {"title": "Data Privacy Policy", "type": "policy", "tags": ""}


def test_insert_drops_metadata_values_chroma_cannot_store(index, fake_embedder):
    vector = fake_embedder.embed_query("Audit 2024")
    index.insert("d1", vector, {"title": "Audit 2024", "tags": ["a", "b"], "owner": None})
    assert index.query(vector, 1)[0]["metadata"] == {"title": "Audit 2024"}


def test_delete_removes_entry(index, fake_embedder):
    client = SimilaritySearchClient(index)
    vector = fake_embedder.embed_query("Data Privacy Policy")
    client.insert("d1", vector, {"title": "Data Privacy Policy"})
    client.insert("d2", fake_embedder.embed_query("Travel Guideline"), {"title": "Travel Guideline"})

    assert client.remove("d1") is True

    assert [match.document_id for match in client.search(vector)] == ["d2"]
