"""Resolve before/after content refs for change groups from page versions."""
import logging
from collections.abc import Iterable, Sequence

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.page_version import PageVersion
from schemas.page_version import (
    StackedVersionRequest,
    VersionContentPair,
    VersionResolveRequest,
    version_pair_key,
)

logger = logging.getLogger(__name__)


class VersionResolver:
    """Looks up the page versions that bound a change group's edits."""

    async def resolve_version_content(
        self,
        db: AsyncSession,
        request: VersionResolveRequest,
    ) -> VersionContentPair | None:
        """
        Resolve the content pair for one page/change group.

        The after side is the latest version of the change group. The before
        side is the ref the activity recorded, if any.

        Args:
            db: Database session.
            request: Page, change group and optional activity content ref.

        Returns:
            VersionContentPair, or None if the change group has no version.
        """
        stmt = (
            select(PageVersion)
            .where(
                PageVersion.page_id == request.page_id,
                PageVersion.change_group_id == request.change_group_id,
            )
            .order_by(PageVersion.page_revision.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        version = result.scalar_one_or_none()
        if version is None:
            return None

        return VersionContentPair(
            page_id=request.page_id,
            change_group_id=request.change_group_id,
            before_content_ref=request.activity_content_ref,
            after_content_ref=version.content_ref,
            before_revision=max(version.page_revision - 1, 0),
            after_revision=version.page_revision,
        )

    async def batch_resolve_version_content(
        self,
        db: AsyncSession,
        requests: Sequence[VersionResolveRequest],
    ) -> dict[str, VersionContentPair]:
        """
        Resolve many change groups with a single query.

        Duplicate (page, change group) pairs are collapsed before querying; the
        first request for a pair supplies its before ref.

        Returns:
            Map keyed by "{page_id}:{change_group_id}". Pairs with no version are
            absent.
        """
        unique: dict[str, VersionResolveRequest] = {}
        for request in requests:
            unique.setdefault(version_pair_key(request.page_id, request.change_group_id), request)
        if not unique:
            return {}

        latest, _ = await self._fetch_bounds(
            db, ((r.page_id, r.change_group_id) for r in unique.values()),
        )

        results: dict[str, VersionContentPair] = {}
        for key, request in unique.items():
            version = latest.get(key)
            if version is None:
                continue
            results[key] = VersionContentPair(
                page_id=request.page_id,
                change_group_id=request.change_group_id,
                before_content_ref=request.activity_content_ref,
                after_content_ref=version.content_ref,
                before_revision=max(version.page_revision - 1, 0),
                after_revision=version.page_revision,
            )
        return results

    async def resolve_stacked_version_content(
        self,
        db: AsyncSession,
        entries: Sequence[StackedVersionRequest],
    ) -> dict[str, VersionContentPair]:
        """
        Resolve collapsed activity groups that may span several revisions.

        The before ref is the group's first recorded content ref rather than the
        revision preceding the latest one, and before_revision is the revision
        just before the group's earliest version.

        Returns:
            Map keyed by "{page_id}:{change_group_id}". Groups with no version are
            absent.
        """
        unique: dict[str, StackedVersionRequest] = {}
        for entry in entries:
            unique.setdefault(version_pair_key(entry.page_id, entry.change_group_id), entry)
        if not unique:
            return {}

        latest, earliest = await self._fetch_bounds(
            db, ((e.page_id, e.change_group_id) for e in unique.values()),
        )

        results: dict[str, VersionContentPair] = {}
        for key, entry in unique.items():
            version = latest.get(key)
            if version is None:
                continue
            first_revision = earliest[key].page_revision
            results[key] = VersionContentPair(
                page_id=entry.page_id,
                change_group_id=entry.change_group_id,
                before_content_ref=entry.first_content_ref,
                after_content_ref=version.content_ref,
                before_revision=max(first_revision - 1, 0),
                after_revision=version.page_revision,
            )
        return results

    async def _fetch_bounds(
        self,
        db: AsyncSession,
        pairs: Iterable[tuple[str, str]],
    ) -> tuple[dict[str, PageVersion], dict[str, PageVersion]]:
        """
        Fetch the latest and earliest version of each (page, change group) pair.

        Matching on the full pair (not just change_group_id) keeps pages that
        share a change group id from receiving each other's content.

        Returns:
            Tuple of (latest by key, earliest by key).
        """
        conditions = [
            and_(PageVersion.page_id == page_id, PageVersion.change_group_id == change_group_id)
            for page_id, change_group_id in pairs
        ]
        stmt = (
            select(PageVersion)
            .where(or_(*conditions))
            .order_by(PageVersion.page_revision.desc())
        )
        result = await db.execute(stmt)

        latest: dict[str, PageVersion] = {}
        earliest: dict[str, PageVersion] = {}
        for version in result.scalars():
            key = version_pair_key(version.page_id, version.change_group_id or "")
            latest.setdefault(key, version)
            earliest[key] = version  # Descending order: the last one seen is the earliest

        logger.debug(
            "Resolved %d of %d change groups in one query", len(latest), len(conditions),
        )
        return latest, earliest


# Singleton instance for use throughout the application
version_resolver = VersionResolver()
