"""Blob storage for files and documents attached to instances."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    async def remove(self, storage_path: str) -> None:
        """Delete the blob at ``storage_path``."""


class LocalBlobStore(BlobStore):
    """Blobs stored as files below ``root``."""

    def __init__(self, root: str | Path = "uploads") -> None:
        self.root = Path(root)

    def _path(self, storage_path: str) -> Path:
        path = Path(storage_path)
        return path if path.is_absolute() else self.root / path

    async def remove(self, storage_path: str) -> None:
        await asyncio.to_thread(self._path(storage_path).unlink)


async def remove_blobs(store: BlobStore, paths: Iterable[Optional[str]]) -> int:
    """Best-effort removal; failures are logged and skipped.

    Returns the number of blobs removed.
    """
    removed = 0
    for path in paths:
        if not path:
            continue
        try:
            await store.remove(path)
            removed += 1
        except OSError as exc:
            logger.error(f"Failed to remove blob {path}: {exc}")
    return removed
