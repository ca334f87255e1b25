"""PageVersion model: one immutable row per committed page edit."""
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, CreatedAtMixin, UUIDv7Mixin

# Key under which compression facts are merged into PageVersion.version_metadata
COMPRESSION_METADATA_KEY = "compression"


class PageVersionSource(StrEnum):
    """What initiated the version."""

    AUTO = "auto"
    MANUAL = "manual"
    PRE_AI = "pre_ai"
    RESTORE = "restore"
    SYSTEM = "system"


class ChangeGroupType(StrEnum):
    """Who produced a change group."""

    USER = "user"
    AI = "ai"
    AUTOMATION = "automation"
    SYSTEM = "system"
    BULK = "bulk"


class PageVersion(Base, UUIDv7Mixin, CreatedAtMixin):
    """
    Immutable snapshot pointer for a page at a given revision.

    Content itself lives in the content store; content_ref points at it and
    content_size is the original (uncompressed) UTF-8 size. page_revision is
    monotonic per page but may have gaps.
    """

    __tablename__ = "page_versions"

    page_id: Mapped[str] = mapped_column(String(64), nullable=False)
    drive_id: Mapped[str] = mapped_column(String(64), nullable=False)

    content_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    content_format: Mapped[str] = mapped_column(String(20), nullable=False)
    content_size: Mapped[int] = mapped_column(Integer, nullable=False)

    page_revision: Mapped[int] = mapped_column(Integer, nullable=False)
    state_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    change_group_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    change_group_type: Mapped[str | None] = mapped_column(String(20), nullable=True)

    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # "metadata" is reserved on declarative classes, so the attribute is renamed
    version_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        default=dict,
    )

    __table_args__ = (
        UniqueConstraint("page_id", "page_revision", name="uq_page_versions_page_revision"),
        # Resolver lookups: latest version for (page, change group)
        Index(
            "ix_page_versions_page_change_group",
            "page_id",
            "change_group_id",
            "page_revision",
        ),
    )
