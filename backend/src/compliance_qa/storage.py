"""Document storage: blob + key/value backends and the content repository."""
from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

from langchain_core.stores import BaseStore, ByteStore

from .errors import StorageError
from .models import ContentBackend, DocumentRecord

_SAFE_KEY = re.compile(r"^[A-Za-z0-9._:-]+$")


class FileBlobStore(ByteStore):
    """Stores each value as a file named after its key under ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key) or ".." in key:
            raise ValueError(f"Invalid blob key: {key!r}")
        return self.root / key

    def mget(self, keys: Sequence[str]) -> list[bytes | None]:
        values: list[bytes | None] = []
        for key in keys:
            path = self._path(key)
            values.append(path.read_bytes() if path.exists() else None)
        return values

    def mset(self, key_value_pairs: Sequence[tuple[str, bytes]]) -> None:
        for key, value in key_value_pairs:
            path = self._path(key)
            tmp_path = path.with_name(path.name + ".tmp")
            tmp_path.write_bytes(value)
            tmp_path.replace(path)

    def mdelete(self, keys: Sequence[str]) -> None:
        for key in keys:
            self._path(key).unlink(missing_ok=True)

    def yield_keys(self, *, prefix: str | None = None) -> Iterator[str]:
        for path in sorted(self.root.iterdir()):
            if not path.is_file() or path.name.endswith(".tmp"):
                continue
            if prefix is None or path.name.startswith(prefix):
                yield path.name


class SQLiteKeyValueStore(BaseStore[str, str]):
    """Durable string key/value store backed by a single SQLite table."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        with self._conn:
            self._conn.execute("CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)")

    def mget(self, keys: Sequence[str]) -> list[str | None]:
        with self._lock:
            found: dict[str, str] = {}
            for key in keys:
                row = self._conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
                if row is not None:
                    found[key] = row[0]
        return [found.get(key) for key in keys]

    def mset(self, key_value_pairs: Sequence[tuple[str, str]]) -> None:
        with self._lock, self._conn:
            self._conn.executemany(
                "INSERT INTO kv (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                list(key_value_pairs),
            )

    def mdelete(self, keys: Sequence[str]) -> None:
        with self._lock, self._conn:
            self._conn.executemany("DELETE FROM kv WHERE key = ?", [(key,) for key in keys])

    def yield_keys(self, *, prefix: str | None = None) -> Iterator[str]:
        with self._lock:
            if prefix is None:
                rows = self._conn.execute("SELECT key FROM kv ORDER BY rowid").fetchall()
            else:
                escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
                rows = self._conn.execute(
                    "SELECT key FROM kv WHERE key LIKE ? ESCAPE '\\' ORDER BY rowid",
                    (escaped + "%",),
                ).fetchall()
        yield from (row[0] for row in rows)

    def close(self) -> None:
        self._conn.close()


def metadata_key(document_id: str) -> str:
    return f"doc:{document_id}"


def content_key(document_id: str) -> str:
    return f"doc:{document_id}:content"


def blob_key(document_id: str) -> str:
    return f"{document_id}.txt"


class DocumentRepository:
    """Uniform access to document metadata and full text.

    Content is read from the blob store first and from the key/value store
    second, so callers never need to know which backend holds a document.
    Metadata always lives in the key/value store.
    """

    def __init__(
        self,
        kv_store: BaseStore[str, str],
        blob_store: ByteStore | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.kv_store = kv_store
        self.blob_store = blob_store
        self.logger = logger or logging.getLogger(__name__)

    def get_content(self, document_id: str) -> str | None:
        try:
            if self.blob_store is not None:
                raw = self.blob_store.mget([blob_key(document_id)])[0]
                if raw is not None:
                    self.logger.debug("Read %s from blob store (%d bytes)", document_id, len(raw))
                    return raw.decode("utf-8")
            content = self.kv_store.mget([content_key(document_id)])[0]
            if content is not None:
                self.logger.debug("Read %s from key/value store (%d chars)", document_id, len(content))
            return content
        except Exception:  # noqa: BLE001
            self.logger.exception("Error reading content for document %s", document_id)
            return None

    def put_content(self, document_id: str, text: str) -> ContentBackend:
        if self.blob_store is not None:
            try:
                self.blob_store.mset([(blob_key(document_id), text.encode("utf-8"))])
                return ContentBackend.BLOB
            except Exception:  # noqa: BLE001
                self.logger.exception("Blob write failed for %s; falling back to key/value store", document_id)
        else:
            self.logger.warning("Blob store not configured; storing %s in key/value store", document_id)
        try:
            self.kv_store.mset([(content_key(document_id), text)])
        except Exception as exc:
            raise StorageError(f"Could not store content for document {document_id}: {exc}") from exc
        return ContentBackend.KV

    def delete_content(self, document_id: str, backend: ContentBackend | None = None) -> None:
        if backend in (None, ContentBackend.KV):
            self.kv_store.mdelete([content_key(document_id)])
        if backend in (None, ContentBackend.BLOB) and self.blob_store is not None:
            try:
                self.blob_store.mdelete([blob_key(document_id)])
            except Exception:  # noqa: BLE001
                self.logger.warning("Blob delete failed for %s (may not exist)", document_id, exc_info=True)

    def put_metadata(self, record: DocumentRecord) -> None:
        self.kv_store.mset([(metadata_key(record.id), json.dumps(record.to_dict()))])

    def get_metadata(self, document_id: str) -> DocumentRecord | None:
        raw = self.kv_store.mget([metadata_key(document_id)])[0]
        if raw is None:
            return None
        return DocumentRecord.from_dict(json.loads(raw))

    def delete_metadata(self, document_id: str) -> None:
        self.kv_store.mdelete([metadata_key(document_id)])

    def delete(self, document_id: str) -> None:
        self.delete_metadata(document_id)
        self.delete_content(document_id)

    def list_documents(self) -> list[DocumentRecord]:
        records: list[DocumentRecord] = []
        keys = [key for key in self.kv_store.yield_keys(prefix="doc:") if not key.endswith(":content")]
        for key, raw in zip(keys, self.kv_store.mget(keys), strict=True):
            if raw is None:
                continue
            try:
                records.append(DocumentRecord.from_dict(json.loads(raw)))
            except (ValueError, KeyError, TypeError):
                self.logger.warning("Skipping unreadable metadata entry %s", key, exc_info=True)
        return records

    def inspect(self, document_id: str) -> dict[str, Any]:
        """Debug view of where a document's data lives."""

        blob_content: str | None = None
        if self.blob_store is not None:
            raw = self.blob_store.mget([blob_key(document_id)])[0]
            blob_content = raw.decode("utf-8") if raw is not None else None
        kv_content = self.kv_store.mget([content_key(document_id)])[0]
        metadata = self.get_metadata(document_id)
        return {
            "doc_id": document_id,
            "metadata": metadata.to_dict() if metadata else None,
            "blob_content": _content_summary(blob_content),
            "kv_content": _content_summary(kv_content),
        }


def _content_summary(content: str | None) -> dict[str, Any] | None:
    if content is None:
        return None
    return {"length": len(content), "preview": content[:500]}
