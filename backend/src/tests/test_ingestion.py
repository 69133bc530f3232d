from pathlib import Path

import pytest

from compliance_qa.errors import DocumentValidationError, StorageError
from compliance_qa.ingestion import DocumentIngestor, load_text, parse_tags
from compliance_qa.models import ContentBackend, DocumentType
from compliance_qa.retrieval import SimilaritySearchClient
from tests.conftest import FakeIndex

POLICY_TEXT = "Section 1. Personal data must be encrypted at rest and in transit."


def test_upload_round_trips_content(repository, embedder):
    index = FakeIndex()
    ingestor = DocumentIngestor(repository, SimilaritySearchClient(index), embedder)

    result = ingestor.upload("Encryption Policy", "policy", POLICY_TEXT, "security, privacy ,,")

    document = result.document
    assert result.content_backend is ContentBackend.BLOB
    assert result.indexed is True
    assert document.type is DocumentType.POLICY
    assert document.tags == ["security", "privacy"]
    assert document.preview == POLICY_TEXT[:200] + "..."
    assert repository.get_content(document.id) == POLICY_TEXT
    assert repository.get_metadata(document.id) == document
    assert index.inserted[document.id][1] == {"title": "Encryption Policy", "type": "policy", "tags": "security,privacy"}


@pytest.mark.parametrize(
    ("title", "doc_type", "content", "message"),
    [
        ("ab", "policy", POLICY_TEXT, "Title must be at least 3 characters long"),
        ("Encryption Policy", "memo", POLICY_TEXT, "Valid document type is required"),
        ("Encryption Policy", None, POLICY_TEXT, "Valid document type is required"),
        ("Encryption Policy", "audit", "   too short  ", "Document must contain at least 10 characters"),
        ("Encryption Policy", "audit", "x" * 100_001, "Document exceeds maximum length of 100,000 characters"),
    ],
)
def test_upload_validation(repository, title, doc_type, content, message):
    ingestor = DocumentIngestor(repository, SimilaritySearchClient(None))
    with pytest.raises(DocumentValidationError, match=message):
        ingestor.upload(title, doc_type, content)
    assert repository.list_documents() == []


def test_upload_without_index_is_stored_but_not_indexed(repository, embedder):
    ingestor = DocumentIngestor(repository, SimilaritySearchClient(None), embedder)
    result = ingestor.upload("Audit 2024", "audit", POLICY_TEXT)
    assert result.indexed is False
    assert [record.id for record in ingestor.list_documents()] == [result.document.id]


def test_indexing_failure_does_not_fail_upload(repository, embedder):
    class BrokenIndex(FakeIndex):
        def insert(self, document_id, vector, metadata):
            raise ConnectionError("index write refused")

    ingestor = DocumentIngestor(repository, SimilaritySearchClient(BrokenIndex()), embedder)
    result = ingestor.upload("Audit 2024", "audit", POLICY_TEXT)
    assert result.indexed is False
    assert repository.get_content(result.document.id) == POLICY_TEXT


def test_failed_content_write_rolls_back_metadata(repository, monkeypatch):
    def refuse(document_id, text):
        raise StorageError("all backends down")

    monkeypatch.setattr(repository, "put_content", refuse)
    ingestor = DocumentIngestor(repository, SimilaritySearchClient(None))

    with pytest.raises(StorageError):
        ingestor.upload("Encryption Policy", "policy", POLICY_TEXT)
    assert repository.list_documents() == []


def test_delete_removes_everything(repository, embedder):
    index = FakeIndex()
    ingestor = DocumentIngestor(repository, SimilaritySearchClient(index), embedder)
    document = ingestor.upload("Encryption Policy", "policy", POLICY_TEXT).document

    ingestor.delete(document.id)
    ingestor.delete(document.id)

    assert repository.get_content(document.id) is None
    assert ingestor.list_documents() == []
    assert document.id not in index.inserted


def test_parse_tags():
    assert parse_tags(None) == []
    assert parse_tags(" gdpr, ,hipaa ") == ["gdpr", "hipaa"]
    assert parse_tags(["a", " b ", ""]) == ["a", "b"]


def test_load_text_reads_plain_files(tmp_path: Path):
    sample = tmp_path / "policy.txt"
    sample.write_text("Line one.\nSection 2. Line two.", encoding="utf-8")
    assert load_text(sample) == "Line one.\nSection 2. Line two."
