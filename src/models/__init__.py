"""SQLAlchemy models."""
from models.base import Base, CreatedAtMixin, UUIDv7Mixin
from models.page_version import PageVersion

__all__ = [
    "Base",
    "CreatedAtMixin",
    "PageVersion",
    "UUIDv7Mixin",
]
