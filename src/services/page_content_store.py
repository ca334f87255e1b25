"""
Content-addressable storage for page content.

Every distinct (format, content) pair is stored once under its SHA-256 ref.
Blobs are immutable: writing content whose ref already exists is a no-op.

Storage layout on the underlying BlobStore:

- `<ref>`    raw UTF-8 payload (also how blobs written before compression look)
- `<ref>.z`  compressed payload: MARKER | version | original size (u32 BE) | zlib

The compressed flag is fixed at write time by the key a payload lands under,
so a raw payload that happens to begin with the marker bytes is never
mistaken for a compressed one.
"""
import asyncio
import hashlib
import logging
import re
import struct
import weakref

from core.config import get_settings
from schemas.page_content import CompressionMetadata, ContentWriteResult
from services.blob_store import BlobStore, FileSystemBlobStore
from services.compression import (
    COMPRESSION_THRESHOLD_BYTES,
    compression_ratio,
    deflate_text,
    inflate_text,
    should_compress,
    utf8_size,
)
from services.exceptions import (
    ContentNotFoundError,
    CorruptDataError,
    InvalidInputError,
    InvalidReferenceError,
)

logger = logging.getLogger(__name__)

COMPRESSED_MARKER = b"PSCOMP"
FRAME_VERSION = 1
_FRAME_HEADER = struct.Struct(">6sBI")  # marker, version, original size

COMPRESSED_KEY_SUFFIX = ".z"
CONTENT_REF_PATTERN = re.compile(r"^[a-f0-9]{64}$")


def compute_content_ref(content: str, content_format: str) -> str:
    """
    Compute the content ref for a (content, format) pair.

    The format is hashed first with a NUL separator so identical text stored
    under two formats never shares a ref.
    """
    hasher = hashlib.sha256()
    hasher.update(content_format.encode("utf-8"))
    hasher.update(b"\x00")
    hasher.update(content.encode("utf-8"))
    return hasher.hexdigest()


def is_valid_content_ref(ref: object) -> bool:
    """True if ref is a 64-character lowercase hex digest."""
    return isinstance(ref, str) and CONTENT_REF_PATTERN.match(ref) is not None


def _validate_ref(ref: object) -> str:
    if not is_valid_content_ref(ref):
        raise InvalidReferenceError(ref)
    return ref  # type: ignore[return-value]


def _frame_compressed(content: str) -> bytes:
    header = _FRAME_HEADER.pack(COMPRESSED_MARKER, FRAME_VERSION, utf8_size(content))
    return header + deflate_text(content)


def _unframe_compressed(ref: str, blob: bytes) -> tuple[int, bytes]:
    """Return (original size, zlib stream) from a compressed blob."""
    if len(blob) < _FRAME_HEADER.size:
        raise CorruptDataError(f"Compressed blob {ref} is shorter than its header")
    marker, version, original_size = _FRAME_HEADER.unpack_from(blob)
    if marker != COMPRESSED_MARKER:
        raise CorruptDataError(f"Compressed blob {ref} is missing its marker")
    if version != FRAME_VERSION:
        raise CorruptDataError(f"Compressed blob {ref} has unknown frame version {version}")
    return original_size, blob[_FRAME_HEADER.size:]


class PageContentStore:
    """Content-addressed page content persistence with optional compression."""

    def __init__(
        self,
        blob_store: BlobStore,
        compression_threshold: int = COMPRESSION_THRESHOLD_BYTES,
    ) -> None:
        self.blob_store = blob_store
        self.compression_threshold = compression_threshold
        # One lock per ref being written, dropped once no writer holds it
        self._write_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def write_page_content(
        self,
        content: str,
        content_format: str,
        compress: bool | None = None,
    ) -> ContentWriteResult:
        """
        Store content and return its ref.

        Args:
            content: Page content to store.
            content_format: Format string hashed into the ref (text, html, json, tiptap).
            compress: True forces compression, False disables it, None applies the
                size threshold policy.

        Returns:
            ContentWriteResult describing the blob actually stored for the ref.
            If the ref already exists the stored blob is left untouched and its
            existing metadata is returned, whatever `compress` asked for.

        Raises:
            InvalidInputError: If content or content_format is not a string, or the
                format is empty.
        """
        if not isinstance(content, str):
            raise InvalidInputError("Content must be a string")
        if not isinstance(content_format, str) or not content_format:
            raise InvalidInputError("Content format must be a non-empty string")

        ref = compute_content_ref(content, content_format)
        lock = self._write_locks.get(ref)
        if lock is None:
            lock = asyncio.Lock()
            self._write_locks[ref] = lock

        async with lock:
            existing = await self._find_metadata(ref)
            if existing is None:
                use_compression = (
                    should_compress(content, self.compression_threshold)
                    if compress is None else compress
                )
                if use_compression:
                    blob = _frame_compressed(content)
                    await self.blob_store.put(ref + COMPRESSED_KEY_SUFFIX, blob)
                else:
                    blob = content.encode("utf-8")
                    await self.blob_store.put(ref, blob)
                logger.info(
                    "Stored page content %s (format=%s, size=%d, stored=%d, compressed=%s)",
                    ref,
                    content_format,
                    utf8_size(content),
                    len(blob),
                    use_compression,
                )
                existing = await self._reconcile(ref)

        return ContentWriteResult(
            ref=ref,
            size=existing.original_size,
            compressed=existing.compressed,
            stored_size=existing.stored_size,
            compression_ratio=existing.compression_ratio,
        )

    async def _reconcile(self, ref: str) -> CompressionMetadata:
        """
        Settle on one blob per ref after a write and return its metadata.

        Writers in other processes can race past the existence check and store
        the same content under both keys. The compressed key wins, as on read,
        and the raw duplicate is removed.
        """
        compressed_key = ref + COMPRESSED_KEY_SUFFIX
        if await self.blob_store.exists(compressed_key) and await self.blob_store.exists(ref):
            logger.info("Removing raw duplicate of compressed page content %s", ref)
            await self.blob_store.delete(ref)
        metadata = await self._find_metadata(ref)
        if metadata is None:
            raise ContentNotFoundError(ref)
        return metadata

    async def read_page_content(self, ref: str) -> str:
        """
        Read content by ref.

        Raises:
            InvalidReferenceError: If ref is not a 64-character hex digest.
            ContentNotFoundError: If nothing is stored under ref.
            CorruptDataError: If the stored payload cannot be decoded.
        """
        ref = _validate_ref(ref)

        compressed_key = ref + COMPRESSED_KEY_SUFFIX
        if await self.blob_store.exists(compressed_key):
            return await self._read_compressed(ref)

        try:
            blob = await self.blob_store.get(ref)
        except ContentNotFoundError:
            # A racing writer may have replaced the raw blob with a compressed one
            if await self.blob_store.exists(compressed_key):
                return await self._read_compressed(ref)
            raise
        try:
            return blob.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning("Stored blob %s is not valid UTF-8: %s", ref, e)
            raise CorruptDataError(f"Stored blob {ref} is not valid UTF-8") from e

    async def _read_compressed(self, ref: str) -> str:
        blob = await self.blob_store.get(ref + COMPRESSED_KEY_SUFFIX)
        original_size, stream = _unframe_compressed(ref, blob)
        content = inflate_text(stream)
        if utf8_size(content) != original_size:
            raise CorruptDataError(
                f"Compressed blob {ref} decoded to {utf8_size(content)} bytes, "
                f"expected {original_size}",
            )
        return content

    async def is_content_compressed(self, ref: str) -> bool:
        """Return whether the blob for ref was stored compressed."""
        metadata = await self.get_content_metadata(ref)
        return metadata.compressed

    async def get_content_metadata(self, ref: str) -> CompressionMetadata:
        """
        Return compression metadata for a stored blob.

        Raises:
            InvalidReferenceError: If ref is not a 64-character hex digest.
            ContentNotFoundError: If nothing is stored under ref.
        """
        ref = _validate_ref(ref)
        metadata = await self._find_metadata(ref)
        if metadata is None:
            raise ContentNotFoundError(ref)
        return metadata

    async def _find_metadata(self, ref: str) -> CompressionMetadata | None:
        """Metadata of the blob a read would use, or None if nothing is stored."""
        compressed_key = ref + COMPRESSED_KEY_SUFFIX
        if not await self.blob_store.exists(compressed_key):
            try:
                blob = await self.blob_store.get(ref)
            except ContentNotFoundError:
                if not await self.blob_store.exists(compressed_key):
                    return None
            else:
                return CompressionMetadata(
                    compressed=False,
                    original_size=len(blob),
                    stored_size=len(blob),
                    compression_ratio=1.0,
                )

        blob = await self.blob_store.get(compressed_key)
        original_size, _ = _unframe_compressed(ref, blob)
        return CompressionMetadata(
            compressed=True,
            original_size=original_size,
            stored_size=len(blob),
            compression_ratio=compression_ratio(original_size, len(blob)),
        )


def build_page_content_store() -> PageContentStore:
    """Build the default filesystem-backed store from settings."""
    settings = get_settings()
    return PageContentStore(
        FileSystemBlobStore(settings.page_content_storage_path),
        compression_threshold=settings.compression_threshold_bytes,
    )
