"""Pydantic schemas for the page content store."""
from pydantic import BaseModel


class CompressionMetadata(BaseModel):
    """Compression facts recorded for a stored blob and on each page version."""

    compressed: bool
    original_size: int
    stored_size: int
    compression_ratio: float  # stored_size / original_size, 1.0 when original_size is 0


class ContentWriteResult(BaseModel):
    """Result of writing content to the store."""

    ref: str
    size: int  # Original UTF-8 size
    compressed: bool
    stored_size: int
    compression_ratio: float

    def to_compression_metadata(self) -> CompressionMetadata:
        """Project to the compression metadata merged into page versions."""
        return CompressionMetadata(
            compressed=self.compressed,
            original_size=self.size,
            stored_size=self.stored_size,
            compression_ratio=self.compression_ratio,
        )
