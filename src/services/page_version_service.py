"""Service layer for creating immutable page versions."""
import hashlib
import json
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.session import get_session_factory
from models.page_version import COMPRESSION_METADATA_KEY, PageVersion
from schemas.page_version import (
    CreatePageVersionInput,
    CreatePageVersionResult,
    PageStateHashInput,
)
from services.content_format import detect_page_content_format
from services.page_content_store import PageContentStore

logger = logging.getLogger(__name__)


def compute_page_state_hash(fields: PageStateHashInput | dict) -> str:
    """
    Compute a deterministic SHA-256 over a page's canonical state.

    Required fields are always hashed. Optional fields are hashed only when
    present, so supplying one (even as None) changes the digest. Keys are
    sorted and JSON-serialized compactly, making the result independent of
    argument order.

    Args:
        fields: State fields as a PageStateHashInput or a plain dict.

    Returns:
        64-character lowercase hex digest.
    """
    state = fields if isinstance(fields, PageStateHashInput) else PageStateHashInput(**fields)
    canonical = state.model_dump(mode="json", exclude_unset=True)
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class PageVersionService:
    """Writes page content to the content store and records the version row."""

    def __init__(
        self,
        content_store: PageContentStore,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.content_store = content_store
        self._session_factory = session_factory

    async def create_page_version(
        self,
        data: CreatePageVersionInput,
        db: AsyncSession | None = None,
        compress: bool | None = None,
    ) -> CreatePageVersionResult:
        """
        Create a page version.

        Content is written to the content store first, then the version row is
        inserted. When `db` is given the row joins the caller's transaction and is
        only flushed; committing (or rolling back) is the caller's job. A rollback
        can leave the content blob orphaned, which is harmless since blobs are
        content-addressed.

        Args:
            data: Version fields and content.
            db: Caller-owned session/transaction. If None, a session is opened and
                committed here.
            compress: True forces compression, False disables it, None uses the
                size threshold.

        Returns:
            CreatePageVersionResult with the new id, content ref and compression facts.
        """
        content_format = data.content_format or detect_page_content_format(data.content)
        stored = await self.content_store.write_page_content(
            data.content, content_format, compress=compress,
        )

        metadata = dict(data.metadata or {})
        metadata[COMPRESSION_METADATA_KEY] = stored.to_compression_metadata().model_dump()

        version = PageVersion(
            page_id=data.page_id,
            drive_id=data.drive_id,
            content_ref=stored.ref,
            content_format=content_format,
            content_size=stored.size,
            page_revision=data.page_revision,
            state_hash=data.state_hash,
            change_group_id=data.change_group_id,
            change_group_type=data.change_group_type,
            created_by=data.created_by,
            source=data.source,
            label=data.label,
            reason=data.reason,
            version_metadata=metadata,
        )

        if db is not None:
            db.add(version)
            await db.flush()
            version_id = version.id
        else:
            session_factory = self._session_factory or get_session_factory()
            async with session_factory() as session:
                try:
                    session.add(version)
                    await session.flush()
                    version_id = version.id
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        logger.debug(
            "Created page version %s for page %s at revision %d",
            version_id,
            data.page_id,
            data.page_revision,
        )
        return CreatePageVersionResult(
            id=version_id,
            content_ref=stored.ref,
            content_size=stored.size,
            compressed=stored.compressed,
            stored_size=stored.stored_size,
            compression_ratio=stored.compression_ratio,
        )
