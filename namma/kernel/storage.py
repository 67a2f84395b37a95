"""
Namma Kernel — Durable Key/Value Storage

The store persists through this interface and nothing else: get/set/delete
of a named string blob. Implement with files for a local session, Postgres
for a hosted one (see postgres_storage.py), or in-memory for tests.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path

from namma.kernel.types import KernelError

logger = logging.getLogger(__name__)

_KEY_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,128}$")


class StorageError(KernelError):
    """A durable read or write did not complete."""

    pass


# ---------------------------------------------------------------------------
# Storage protocol
# ---------------------------------------------------------------------------


class KeyValueStorage:
    """
    Abstract storage interface.
    A completed `await set(...)` is the durable-write acknowledgement.
    """

    async def get(self, key: str) -> str | None:
        """Fetch a blob. Returns None if not found."""
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        """Write a blob, replacing any previous value."""
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        """Delete a blob. Missing keys are ignored."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release any resources held by the backend."""
        return None


class MemoryStorage(KeyValueStorage):
    """In-memory storage for testing."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.blobs: dict[str, str] = dict(initial or {})
        self.writes = 0

    async def get(self, key: str) -> str | None:
        return self.blobs.get(key)

    async def set(self, key: str, value: str) -> None:
        self.blobs[key] = value
        self.writes += 1

    async def delete(self, key: str) -> None:
        self.blobs.pop(key, None)


class FileStorage(KeyValueStorage):
    """
    One file per key under a data directory.
    Writes go to a temp file in the same directory and are renamed into
    place, so a reader never sees a half-written blob.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.root / f"{key}.json"

    async def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    async def set(self, key: str, value: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write_atomic, path, value)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e
        logger.debug("FileStorage: wrote %s (%d bytes)", path, len(value))

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e

    def _write_atomic(self, path: Path, value: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
