"""
Blob Storage Infrastructure
===========================

Object storage for raw uploaded files.

The knowledge context only needs ``put(bytes, key) -> url`` and
``get(url) -> bytes``; anything richer (signed URLs, lifecycle rules)
belongs to the hosting platform.
"""

import asyncio
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import unquote, urlparse

from eventdesk.config import Settings, settings as default_settings
from eventdesk.core import BlobStoreException
from eventdesk.knowledge.application.services import IBlobStore


class LocalBlobStore(IBlobStore):
    """Filesystem blob store returning ``file://`` URLs."""

    def __init__(self, root: Path):
        self._root = Path(root).resolve()

    def _path_for(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise BlobStoreException(f"Key escapes storage root: {key}")
        return path

    async def put(self, data: bytes, key: str) -> str:
        path = self._path_for(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise BlobStoreException(f"Failed to write {key}: {e}")
        return path.as_uri()

    async def get(self, url: str) -> bytes:
        if not url.startswith("file://"):
            raise BlobStoreException(f"Not a local blob URL: {url}")
        path = Path(unquote(urlparse(url).path))
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise BlobStoreException(f"Failed to read {url}: {e}")


class InMemoryBlobStore(IBlobStore):
    """Process-local blob store for tests and demos."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}

    async def put(self, data: bytes, key: str) -> str:
        url = f"memory://{key}"
        self._blobs[url] = bytes(data)
        return url

    async def get(self, url: str) -> bytes:
        try:
            return self._blobs[url]
        except KeyError:
            raise BlobStoreException(f"Blob not found: {url}")


def create_blob_store(config: Optional[Settings] = None) -> IBlobStore:
    """Build the blob store selected by ``blob_backend``."""
    config = config or default_settings
    if config.blob_backend == "memory":
        return InMemoryBlobStore()
    return LocalBlobStore(config.blob_storage_path)
