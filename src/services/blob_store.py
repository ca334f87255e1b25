"""Key-value blob persistence backends for the page content store."""
import asyncio
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Protocol

from services.exceptions import ContentNotFoundError, InvalidInputError

logger = logging.getLogger(__name__)

# Keys are content refs, optionally with a dotted suffix (e.g. "<ref>.z")
_KEY_PATTERN = re.compile(r"^[a-f0-9]{64}(\.[a-z]+)?$")


class BlobStore(Protocol):
    """Minimal key-value interface the content store needs from persistence."""

    async def put(self, key: str, data: bytes) -> None:
        """Store bytes under key, overwriting any previous value."""
        ...

    async def get(self, key: str) -> bytes:
        """Return bytes for key. Raises ContentNotFoundError if absent."""
        ...

    async def exists(self, key: str) -> bool:
        """Return True if key has a stored value."""
        ...

    async def delete(self, key: str) -> None:
        """Remove key if present. Missing keys are ignored."""
        ...


class InMemoryBlobStore:
    """
    Dict-backed blob store.

    Writes replace whole values, so concurrent writers of identical bytes
    converge on the same value. Intended for tests and ephemeral processes.
    """

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}
        self.put_count = 0

    async def put(self, key: str, data: bytes) -> None:
        self._blobs[key] = bytes(data)
        self.put_count += 1

    async def get(self, key: str) -> bytes:
        try:
            return self._blobs[key]
        except KeyError:
            raise ContentNotFoundError(key) from None

    async def exists(self, key: str) -> bool:
        return key in self._blobs

    async def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    def __len__(self) -> int:
        return len(self._blobs)


class FileSystemBlobStore:
    """
    Filesystem blob store sharded by the first two characters of each key.

    Layout: <root>/<key[:2]>/<key>. Writes go to a temp file in the target
    directory and are renamed into place, so readers never observe a partial
    blob and racing writers of the same key leave exactly one complete file.
    File I/O runs in a worker thread to keep the event loop free.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            # Keys become file names; reject anything that could escape root
            raise InvalidInputError(f"Invalid blob key: {key!r}")
        return self.root / key[:2] / key

    async def put(self, key: str, data: bytes) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(self._write_atomic, path, data)

    async def get(self, key: str) -> bytes:
        path = self._path_for(key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise ContentNotFoundError(key) from None

    async def exists(self, key: str) -> bool:
        path = self._path_for(key)
        return await asyncio.to_thread(path.is_file)

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
        logger.debug("Wrote blob %s (%d bytes)", path.name, len(data))
