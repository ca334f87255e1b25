"""Shared exceptions for the content store, codec and version services."""


class ContentStoreError(Exception):
    """Base exception for page content storage and retrieval failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class InvalidReferenceError(ContentStoreError):
    """Raised when a content ref is not a 64-character lowercase hex digest."""

    def __init__(self, ref: object) -> None:
        self.ref = ref
        super().__init__(f"Invalid content reference: {ref!r}")


class ContentNotFoundError(ContentStoreError):
    """Raised when a well-formed ref has no stored blob behind it."""

    def __init__(self, ref: str) -> None:
        self.ref = ref
        super().__init__(f"Content not found: {ref}")


class InvalidInputError(ContentStoreError, ValueError):
    """
    Raised when a codec or store call receives non-textual or missing input.

    These are caller bugs: they are raised before any side effect happens.
    """


class CorruptDataError(ContentStoreError):
    """
    Raised when a stored or compressed payload cannot be decoded.

    Covers bad framing, truncated streams, checksum failures and size
    mismatches. Never retried since the cause is structural.
    """
