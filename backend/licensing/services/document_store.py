"""
Document Store — Binary object storage for generated artifacts.
get(key) / put(key, data); keys are relative paths like "<app_no>/certificate.pdf".
"""
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from licensing.config import get_settings

logger = logging.getLogger(__name__)


class DocumentStore:
    """Filesystem-backed object store rooted at ARTIFACT_DIR."""

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or get_settings().ARTIFACT_DIR)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Storage key escapes store root: {key}")
        return path

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        os.makedirs(path.parent, exist_ok=True)
        path.write_bytes(data)
        logger.debug("Stored %s (%d bytes)", key, len(data))

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()


class InMemoryDocumentStore(DocumentStore):
    def __init__(self):
        self.blobs: Dict[str, bytes] = {}

    def put(self, key: str, data: bytes) -> None:
        self.blobs[key] = data

    def get(self, key: str) -> Optional[bytes]:
        return self.blobs.get(key)


_default_store: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
    """FastAPI dependency for the process-wide object store."""
    global _default_store
    if _default_store is None:
        _default_store = DocumentStore()
    return _default_store
