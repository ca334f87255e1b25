"""Tests for the compression codec."""
import base64
import zlib

import pytest

from services.compression import (
    COMPRESSION_THRESHOLD_BYTES,
    compress,
    compress_if_needed,
    compression_ratio,
    decompress,
    decompress_if_needed,
    deflate_text,
    inflate_text,
    should_compress,
)
from services.exceptions import CorruptDataError, InvalidInputError


class TestCompress:
    """Tests for compress()."""

    def test__compress__round_trips(self) -> None:
        """Compressed text decompresses back to the original."""
        text = "Hello, World! " * 200
        result = compress(text)
        assert decompress(result.data) == text

    def test__compress__round_trips_unicode(self) -> None:
        """Multi-byte characters survive a round trip."""
        text = "日本語テキスト 🎉 émojis " * 100
        assert decompress(compress(text).data) == text

    def test__compress__empty_string(self) -> None:
        """Empty input compresses and reports ratio 1."""
        result = compress("")
        assert result.original_size == 0
        assert result.compression_ratio == 1.0
        assert decompress(result.data) == ""

    def test__compress__is_deterministic(self) -> None:
        """Identical input yields byte-identical output."""
        text = "deterministic content " * 100
        assert compress(text).data == compress(text).data

    def test__compress__reports_sizes(self) -> None:
        """Sizes are measured in bytes and the ratio is compressed/original."""
        text = "a" * 5000
        result = compress(text)
        assert result.original_size == 5000
        assert result.compressed_size == len(base64.b64decode(result.data))
        assert result.compression_ratio == result.compressed_size / 5000
        assert result.compressed_size < result.original_size

    def test__compress__rejects_non_string(self) -> None:
        """Non-textual input raises InvalidInputError."""
        with pytest.raises(InvalidInputError):
            compress(b"bytes")  # type: ignore[arg-type]
        with pytest.raises(InvalidInputError):
            compress(None)  # type: ignore[arg-type]


class TestDecompress:
    """Tests for decompress()."""

    def test__decompress__rejects_empty(self) -> None:
        """Empty data raises InvalidInputError."""
        with pytest.raises(InvalidInputError):
            decompress("")

    def test__decompress__rejects_non_string(self) -> None:
        """Non-string data raises InvalidInputError."""
        with pytest.raises(InvalidInputError):
            decompress(123)  # type: ignore[arg-type]

    def test__decompress__invalid_base64(self) -> None:
        """Data that is not base64 raises CorruptDataError."""
        with pytest.raises(CorruptDataError):
            decompress("not base64 !!!")

    def test__decompress__not_a_zlib_stream(self) -> None:
        """Valid base64 that is not zlib raises CorruptDataError."""
        with pytest.raises(CorruptDataError):
            decompress(base64.b64encode(b"plain bytes").decode("ascii"))

    def test__decompress__truncated_stream(self) -> None:
        """A truncated stream raises CorruptDataError."""
        payload = zlib.compress(("x" * 2000 + "y" * 2000).encode())
        with pytest.raises(CorruptDataError):
            decompress(base64.b64encode(payload[:-6]).decode("ascii"))

    def test__decompress__bad_checksum(self) -> None:
        """A stream whose checksum does not match raises CorruptDataError."""
        payload = bytearray(zlib.compress(b"checksummed content"))
        payload[-1] ^= 0xFF
        with pytest.raises(CorruptDataError):
            decompress(base64.b64encode(bytes(payload)).decode("ascii"))


class TestInflateText:
    """Tests for the raw zlib helpers."""

    def test__inflate_text__rejects_trailing_data(self) -> None:
        """Bytes after the end of the stream are treated as corruption."""
        with pytest.raises(CorruptDataError):
            inflate_text(deflate_text("content") + b"extra")

    def test__inflate_text__rejects_invalid_utf8(self) -> None:
        """A stream that does not decode as UTF-8 raises CorruptDataError."""
        with pytest.raises(CorruptDataError):
            inflate_text(zlib.compress(b"\xff\xfe\xfd"))


class TestShouldCompress:
    """Tests for should_compress()."""

    def test__should_compress__at_threshold(self) -> None:
        """Exactly 1024 bytes crosses the threshold."""
        assert should_compress("a" * 1024) is True

    def test__should_compress__below_threshold(self) -> None:
        """1023 bytes stays below the threshold."""
        assert should_compress("a" * 1023) is False

    def test__should_compress__counts_bytes_not_characters(self) -> None:
        """Multi-byte characters count by their encoded size."""
        # 342 three-byte characters = 1026 bytes, but only 342 characters
        assert should_compress("日" * 342) is True
        assert should_compress("日" * 341) is False

    def test__should_compress__empty_and_non_string(self) -> None:
        """Empty or non-string input is never compressed."""
        assert should_compress("") is False
        assert should_compress(None) is False
        assert should_compress(b"a" * 2000) is False

    def test__should_compress__custom_threshold(self) -> None:
        """A custom threshold overrides the default."""
        assert should_compress("abc", threshold=3) is True
        assert should_compress("ab", threshold=3) is False


class TestCompressIfNeeded:
    """Tests for compress_if_needed() and decompress_if_needed()."""

    def test__compress_if_needed__small_content_untouched(self) -> None:
        """Content below the threshold is returned as-is."""
        result = compress_if_needed("small")
        assert result.compressed is False
        assert result.data == "small"
        assert result.compression_ratio == 1.0
        assert decompress_if_needed(result.data, result.compressed) == "small"

    def test__compress_if_needed__large_content_compressed(self) -> None:
        """Content at or above the threshold is compressed and round-trips."""
        text = "x" * COMPRESSION_THRESHOLD_BYTES
        result = compress_if_needed(text)
        assert result.compressed is True
        assert result.data != text
        assert decompress_if_needed(result.data, result.compressed) == text

    def test__compress_if_needed__rejects_non_string(self) -> None:
        """Non-string input raises InvalidInputError."""
        with pytest.raises(InvalidInputError):
            compress_if_needed(42)  # type: ignore[arg-type]


class TestCompressionRatio:
    """Tests for compression_ratio()."""

    def test__compression_ratio__zero_original_is_one(self) -> None:
        """Ratio is defined as 1 when nothing was compressed."""
        assert compression_ratio(0, 0) == 1.0

    def test__compression_ratio__stored_over_original(self) -> None:
        """Ratio is stored/original."""
        assert compression_ratio(200, 50) == 0.25
