"""
Reversible compression for page content.

Compressed text is a zlib stream (adler32 checksummed) carried as base64 so it
can live in text columns. zlib output depends only on input and level, so
identical text always compresses to byte-identical data.
"""
import base64
import binascii
import zlib
from dataclasses import dataclass

from services.exceptions import CorruptDataError, InvalidInputError

COMPRESSION_THRESHOLD_BYTES = 1024
COMPRESSION_LEVEL = 6


@dataclass(frozen=True)
class CompressionResult:
    """Result of compressing a string."""

    data: str  # base64-encoded zlib stream
    original_size: int  # UTF-8 bytes before compression
    compressed_size: int  # zlib bytes after compression
    compression_ratio: float  # compressed_size / original_size, 1.0 for empty input


@dataclass(frozen=True)
class CompressIfNeededResult:
    """Result of applying the threshold-based auto policy."""

    data: str
    compressed: bool
    original_size: int
    compressed_size: int
    compression_ratio: float


def compression_ratio(original_size: int, stored_size: int) -> float:
    """Return stored/original size, defined as 1.0 when nothing was stored."""
    if original_size == 0:
        return 1.0
    return stored_size / original_size


def utf8_size(text: str) -> int:
    """Length of text in UTF-8 bytes (not characters)."""
    return len(text.encode("utf-8"))


def deflate_text(text: str) -> bytes:
    """
    Compress text to a raw zlib stream.

    Raises:
        InvalidInputError: If text is not a string.
    """
    if not isinstance(text, str):
        raise InvalidInputError("Content to compress must be a string")
    return zlib.compress(text.encode("utf-8"), COMPRESSION_LEVEL)


def inflate_text(payload: bytes) -> str:
    """
    Decompress a raw zlib stream back to text.

    Raises:
        CorruptDataError: If the stream is truncated, fails its checksum, or
            does not decode as UTF-8.
    """
    try:
        decompressor = zlib.decompressobj()
        raw = decompressor.decompress(payload) + decompressor.flush()
        if not decompressor.eof or decompressor.unused_data:
            raise CorruptDataError("Decompression failed: incomplete or trailing data")
        return raw.decode("utf-8")
    except (zlib.error, UnicodeDecodeError) as e:
        raise CorruptDataError(f"Decompression failed: {e}") from e


def compress(text: str) -> CompressionResult:
    """
    Compress a string.

    Args:
        text: Content to compress.

    Returns:
        CompressionResult with base64 data and size metadata.

    Raises:
        InvalidInputError: If text is not a string.
    """
    payload = deflate_text(text)
    original_size = utf8_size(text)
    return CompressionResult(
        data=base64.b64encode(payload).decode("ascii"),
        original_size=original_size,
        compressed_size=len(payload),
        compression_ratio=compression_ratio(original_size, len(payload)),
    )


def decompress(data: str) -> str:
    """
    Reverse `compress`.

    Raises:
        InvalidInputError: If data is not a non-empty string.
        CorruptDataError: If data is not valid base64 or not a valid zlib stream.
    """
    if not isinstance(data, str) or not data:
        raise InvalidInputError("Compressed data must be a non-empty string")
    try:
        payload = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CorruptDataError(f"Decompression failed: {e}") from e
    return inflate_text(payload)


def should_compress(text: object, threshold: int = COMPRESSION_THRESHOLD_BYTES) -> bool:
    """True iff text is a non-empty string of at least `threshold` UTF-8 bytes."""
    if not isinstance(text, str) or not text:
        return False
    return utf8_size(text) >= threshold


def compress_if_needed(
    text: str,
    threshold: int = COMPRESSION_THRESHOLD_BYTES,
) -> CompressIfNeededResult:
    """Compress text only when it crosses the size threshold."""
    if not isinstance(text, str):
        raise InvalidInputError("Content to compress must be a string")
    if not should_compress(text, threshold):
        size = utf8_size(text)
        return CompressIfNeededResult(
            data=text,
            compressed=False,
            original_size=size,
            compressed_size=size,
            compression_ratio=1.0,
        )
    result = compress(text)
    return CompressIfNeededResult(
        data=result.data,
        compressed=True,
        original_size=result.original_size,
        compressed_size=result.compressed_size,
        compression_ratio=result.compression_ratio,
    )


def decompress_if_needed(data: str, is_compressed: bool) -> str:
    """Return data unchanged unless it was compressed by `compress_if_needed`."""
    if not is_compressed:
        return data
    return decompress(data)
