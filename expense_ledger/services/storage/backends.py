"""
Key-Value Backends for the local transaction store.

Each logical collection (transactions, settings) is one JSON blob under
one key, just like the browser's localStorage. Backends only load and
save whole blobs; indexing and validation live in LocalTransactionStorage.

TRADEOFFS:
- A save rewrites the whole collection (fine for a personal ledger)
- The file backend replaces files atomically, so a crash mid-write leaves
  the previous blob intact
"""

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

from expense_ledger.services.storage.interface import PersistenceError


class KeyValueBackend(ABC):
    """Whole-blob storage keyed by collection name."""

    name: str = "backend"

    @abstractmethod
    async def load(self, key: str) -> Optional[Any]:
        """
        Load and decode the blob stored under `key`.

        Returns:
            The decoded JSON value, or None if nothing is stored

        Raises:
            PersistenceError: If the blob can't be read or decoded
        """
        pass

    @abstractmethod
    async def save(self, key: str, value: Any) -> None:
        """
        Encode and store `value` under `key`, replacing any previous blob.

        Raises:
            PersistenceError: If the write fails
        """
        pass


class MemoryBackend(KeyValueBackend):
    """
    In-process backend.

    Values are stored as encoded JSON so the quota check and the
    copy-on-read behaviour match a browser's localStorage.
    """

    name = "memory"

    def __init__(self, quota_bytes: Optional[int] = None):
        """
        Args:
            quota_bytes: Optional cap on the total encoded size. A save that
                         would exceed it fails like a full localStorage.
        """
        self._blobs: dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def _used_bytes(self, excluding: Optional[str] = None) -> int:
        return sum(
            len(blob.encode("utf-8"))
            for key, blob in self._blobs.items()
            if key != excluding
        )

    async def load(self, key: str) -> Optional[Any]:
        blob = self._blobs.get(key)
        if blob is None:
            return None
        return json.loads(blob)

    async def save(self, key: str, value: Any) -> None:
        blob = json.dumps(value, ensure_ascii=False)
        if self._quota_bytes is not None:
            needed = self._used_bytes(excluding=key) + len(blob.encode("utf-8"))
            if needed > self._quota_bytes:
                raise PersistenceError(
                    f"Storage quota exceeded ({needed} > {self._quota_bytes} bytes)"
                )
        self._blobs[key] = blob

    def keys(self) -> list[str]:
        return list(self._blobs)


class JsonFileBackend(KeyValueBackend):
    """
    One `<key>.json` file per collection inside a directory.

    File I/O runs in a worker thread so the event loop is never blocked.
    """

    name = "file"

    def __init__(self, directory: Path):
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        safe_key = "".join(c if c.isalnum() or c in "-_." else "_" for c in key)
        return self._directory / f"{safe_key}.json"

    def _read(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, key: str, value: Any) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.stem}.",
            suffix=".tmp",
            dir=self._directory,
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    async def load(self, key: str) -> Optional[Any]:
        try:
            return await asyncio.to_thread(self._read, key)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read {self.path_for(key)}: {e}") from e

    async def save(self, key: str, value: Any) -> None:
        try:
            await asyncio.to_thread(self._write, key, value)
        except OSError as e:
            raise PersistenceError(f"Failed to write {self.path_for(key)}: {e}") from e
