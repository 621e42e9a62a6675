from __future__ import annotations

"""Upload records repository.

Keeps a lightweight record of issued upload keys (`id`, `key`, `created_at`,
free-form `metadata`). The media pipeline never depends on it; the upload
facade writes a record when one is wired.

The default implementation is in-memory. Point `UPLOAD_RECORD_STORE_IMPL` at a
custom class (`module.sub:ClassName`) to back it with a database.
"""

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from app.schemas.media import UploadRecord


class UploadRecordStoreProtocol:
    def create(self, *, key: str, metadata: Optional[Dict[str, Any]] = None) -> UploadRecord:
        raise NotImplementedError

    def get(self, record_id: uuid.UUID) -> Optional[UploadRecord]:
        raise NotImplementedError

    def list(self, *, limit: int = 100, offset: int = 0) -> List[UploadRecord]:
        raise NotImplementedError

    def update(
        self,
        record_id: uuid.UUID,
        *,
        key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[UploadRecord]:
        raise NotImplementedError

    def delete(self, record_id: uuid.UUID) -> bool:
        raise NotImplementedError


class MemoryUploadRecordStore(UploadRecordStoreProtocol):
    """Thread-safe in-memory store; newest records first when listing."""

    def __init__(self) -> None:
        self._items: Dict[uuid.UUID, UploadRecord] = {}
        self._lock = threading.Lock()

    def create(self, *, key: str, metadata: Optional[Dict[str, Any]] = None) -> UploadRecord:
        rec = UploadRecord(
            id=uuid.uuid4(),
            key=key,
            created_at=datetime.now(timezone.utc),
            metadata=dict(metadata or {}),
        )
        with self._lock:
            self._items[rec.id] = rec
        return rec

    def get(self, record_id: uuid.UUID) -> Optional[UploadRecord]:
        with self._lock:
            return self._items.get(record_id)

    def list(self, *, limit: int = 100, offset: int = 0) -> List[UploadRecord]:
        with self._lock:
            items = sorted(self._items.values(), key=lambda r: r.created_at, reverse=True)
        return items[offset: offset + limit]

    def update(
        self,
        record_id: uuid.UUID,
        *,
        key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[UploadRecord]:
        with self._lock:
            cur = self._items.get(record_id)
            if cur is None:
                return None
            changes: Dict[str, Any] = {}
            if key is not None:
                changes["key"] = key
            if metadata is not None:
                changes["metadata"] = {**cur.metadata, **metadata}
            new = cur.model_copy(update=changes)
            self._items[record_id] = new
            return new

    def delete(self, record_id: uuid.UUID) -> bool:
        with self._lock:
            return self._items.pop(record_id, None) is not None


def _import_string(path: str):
    module_path, _, class_name = path.partition(":")
    if not module_path or not class_name:
        raise ValueError("UPLOAD_RECORD_STORE_IMPL must be 'module.sub:ClassName'")
    module = __import__(module_path, fromlist=[class_name])
    return getattr(module, class_name)


def get_upload_record_store(impl_path: Optional[str] = None) -> UploadRecordStoreProtocol:
    """
    Factory for the upload record store.
    Defaults to MemoryUploadRecordStore.
    """
    if impl_path:
        cls = _import_string(impl_path)
        return cls()  # type: ignore
    return MemoryUploadRecordStore()


__all__ = ["UploadRecordStoreProtocol", "MemoryUploadRecordStore", "get_upload_record_store"]
