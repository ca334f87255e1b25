"""Tests for the version resolver."""
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from models.page_version import PageVersion
from schemas.page_version import StackedVersionRequest, VersionResolveRequest
from services.version_resolver import version_resolver


def ref(char: str) -> str:
    """Build a well-formed content ref from one hex character."""
    return char * 64


async def add_version(
    db: AsyncSession,
    page_id: str,
    revision: int,
    content_ref: str,
    change_group_id: str | None = None,
) -> PageVersion:
    """Insert a version row."""
    version = PageVersion(
        page_id=page_id,
        drive_id="drive-1",
        content_ref=content_ref,
        content_format="text",
        content_size=10,
        page_revision=revision,
        state_hash="f" * 64,
        change_group_id=change_group_id,
        source="auto",
    )
    db.add(version)
    await db.flush()
    return version


class QueryCounter:
    """Counts SELECT statements issued through an engine."""

    def __init__(self, engine: AsyncEngine) -> None:
        self.count = 0
        self._engine = engine.sync_engine

    def _on_execute(self, conn, cursor, statement, parameters, context, executemany) -> None:  # noqa: ANN001, ARG002
        if statement.lstrip().upper().startswith("SELECT"):
            self.count += 1

    def __enter__(self) -> "QueryCounter":
        event.listen(self._engine, "before_cursor_execute", self._on_execute)
        return self

    def __exit__(self, *exc: object) -> None:
        event.remove(self._engine, "before_cursor_execute", self._on_execute)


class TestResolveVersionContent:
    """Tests for VersionResolver.resolve_version_content()."""

    @pytest.mark.asyncio
    async def test__resolve__latest_version_of_change_group(self, db_session: AsyncSession) -> None:
        """The after side is the latest version in the change group."""
        await add_version(db_session, "page-1", 3, ref("a"), "cg-1")
        await add_version(db_session, "page-1", 5, ref("b"), "cg-1")
        await add_version(db_session, "page-1", 6, ref("c"), "cg-2")

        pair = await version_resolver.resolve_version_content(
            db_session,
            VersionResolveRequest(page_id="page-1", change_group_id="cg-1", activity_content_ref=ref("0")),
        )

        assert pair is not None
        assert pair.after_content_ref == ref("b")
        assert pair.after_revision == 5
        assert pair.before_revision == 4
        assert pair.before_content_ref == ref("0")

    @pytest.mark.asyncio
    async def test__resolve__no_activity_ref(self, db_session: AsyncSession) -> None:
        """Without an activity ref the before side is None."""
        await add_version(db_session, "page-1", 2, ref("a"), "cg-1")
        pair = await version_resolver.resolve_version_content(
            db_session, VersionResolveRequest(page_id="page-1", change_group_id="cg-1"),
        )
        assert pair is not None
        assert pair.before_content_ref is None

    @pytest.mark.asyncio
    async def test__resolve__revision_zero_clamps_before(self, db_session: AsyncSession) -> None:
        """A version at revision 0 gives before_revision 0, never negative."""
        await add_version(db_session, "page-1", 0, ref("a"), "cg-1")
        pair = await version_resolver.resolve_version_content(
            db_session, VersionResolveRequest(page_id="page-1", change_group_id="cg-1"),
        )
        assert pair is not None
        assert pair.before_revision == 0
        assert pair.after_revision == 0

    @pytest.mark.asyncio
    async def test__resolve__missing_returns_none(self, db_session: AsyncSession) -> None:
        """An unknown change group resolves to None rather than raising."""
        pair = await version_resolver.resolve_version_content(
            db_session, VersionResolveRequest(page_id="page-1", change_group_id="missing"),
        )
        assert pair is None

    @pytest.mark.asyncio
    async def test__resolve__scoped_to_page(self, db_session: AsyncSession) -> None:
        """A change group id on another page is not matched."""
        await add_version(db_session, "page-2", 1, ref("a"), "cg-1")
        pair = await version_resolver.resolve_version_content(
            db_session, VersionResolveRequest(page_id="page-1", change_group_id="cg-1"),
        )
        assert pair is None


class TestBatchResolveVersionContent:
    """Tests for VersionResolver.batch_resolve_version_content()."""

    @pytest.mark.asyncio
    async def test__batch__only_matched_groups_present(self, db_session: AsyncSession) -> None:
        """Groups without a version are absent from the result."""
        await add_version(db_session, "page-1", 1, ref("a"), "cg-1")
        await add_version(db_session, "page-1", 2, ref("b"), "cg-1")
        await add_version(db_session, "page-2", 1, ref("c"), "cg-2")

        results = await version_resolver.batch_resolve_version_content(
            db_session,
            [
                VersionResolveRequest(page_id="page-1", change_group_id="cg-1"),
                VersionResolveRequest(page_id="page-2", change_group_id="cg-2", activity_content_ref=ref("d")),
                VersionResolveRequest(page_id="page-3", change_group_id="cg-missing"),
            ],
        )

        assert set(results) == {"page-1:cg-1", "page-2:cg-2"}
        assert results["page-1:cg-1"].after_content_ref == ref("b")
        assert results["page-1:cg-1"].before_revision == 1
        assert results["page-2:cg-2"].before_content_ref == ref("d")
        assert results["page-2:cg-2"].before_revision == 0

    @pytest.mark.asyncio
    async def test__batch__single_query_with_duplicates(
        self,
        db_session: AsyncSession,
        async_engine: AsyncEngine,
    ) -> None:
        """Repeated change groups are deduplicated and resolved in one query."""
        await add_version(db_session, "page-1", 1, ref("a"), "cg-1")
        await add_version(db_session, "page-2", 1, ref("b"), "cg-2")
        requests = [
            VersionResolveRequest(page_id="page-1", change_group_id="cg-1", activity_content_ref=ref("1")),
            VersionResolveRequest(page_id="page-1", change_group_id="cg-1", activity_content_ref=ref("2")),
            VersionResolveRequest(page_id="page-2", change_group_id="cg-2"),
        ]

        with QueryCounter(async_engine) as counter:
            results = await version_resolver.batch_resolve_version_content(db_session, requests)

        assert counter.count == 1
        assert len(results) == 2
        assert results["page-1:cg-1"].before_content_ref == ref("1")

    @pytest.mark.asyncio
    async def test__batch__shared_change_group_across_pages(self, db_session: AsyncSession) -> None:
        """Pages sharing a change group id each get their own content."""
        await add_version(db_session, "page-1", 4, ref("a"), "shared")
        await add_version(db_session, "page-2", 9, ref("b"), "shared")

        results = await version_resolver.batch_resolve_version_content(
            db_session,
            [
                VersionResolveRequest(page_id="page-1", change_group_id="shared"),
                VersionResolveRequest(page_id="page-2", change_group_id="shared"),
            ],
        )

        assert results["page-1:shared"].after_content_ref == ref("a")
        assert results["page-1:shared"].after_revision == 4
        assert results["page-2:shared"].after_content_ref == ref("b")
        assert results["page-2:shared"].after_revision == 9

    @pytest.mark.asyncio
    async def test__batch__empty_requests(
        self,
        db_session: AsyncSession,
        async_engine: AsyncEngine,
    ) -> None:
        """No requests means no query."""
        with QueryCounter(async_engine) as counter:
            assert await version_resolver.batch_resolve_version_content(db_session, []) == {}
        assert counter.count == 0


class TestResolveStackedVersionContent:
    """Tests for VersionResolver.resolve_stacked_version_content()."""

    @pytest.mark.asyncio
    async def test__stacked__before_from_first_content_ref(self, db_session: AsyncSession) -> None:
        """The before ref is the group's first recorded ref, spanning several revisions."""
        await add_version(db_session, "page-1", 3, ref("a"), "cg-1")
        await add_version(db_session, "page-1", 4, ref("b"), "cg-1")
        await add_version(db_session, "page-1", 7, ref("c"), "cg-1")

        results = await version_resolver.resolve_stacked_version_content(
            db_session,
            [StackedVersionRequest(page_id="page-1", change_group_id="cg-1", first_content_ref=ref("0"))],
        )

        pair = results["page-1:cg-1"]
        assert pair.before_content_ref == ref("0")
        assert pair.after_content_ref == ref("c")
        assert pair.after_revision == 7
        assert pair.before_revision == 2

    @pytest.mark.asyncio
    async def test__stacked__earliest_at_zero_clamps(self, db_session: AsyncSession) -> None:
        """A group starting at revision 0 reports before_revision 0."""
        await add_version(db_session, "page-1", 0, ref("a"), "cg-1")
        await add_version(db_session, "page-1", 1, ref("b"), "cg-1")

        results = await version_resolver.resolve_stacked_version_content(
            db_session, [StackedVersionRequest(page_id="page-1", change_group_id="cg-1")],
        )

        assert results["page-1:cg-1"].before_revision == 0
        assert results["page-1:cg-1"].before_content_ref is None

    @pytest.mark.asyncio
    async def test__stacked__missing_groups_absent(
        self,
        db_session: AsyncSession,
        async_engine: AsyncEngine,
    ) -> None:
        """Unmatched groups are absent and everything resolves in one query."""
        await add_version(db_session, "page-1", 1, ref("a"), "cg-1")

        with QueryCounter(async_engine) as counter:
            results = await version_resolver.resolve_stacked_version_content(
                db_session,
                [
                    StackedVersionRequest(page_id="page-1", change_group_id="cg-1"),
                    StackedVersionRequest(page_id="page-1", change_group_id="cg-none"),
                ],
            )

        assert list(results) == ["page-1:cg-1"]
        assert counter.count == 1
