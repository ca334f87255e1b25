"""
Builds budgeted content diffs for an activity feed.

Pipeline: group activities, resolve the page versions bounding each change
group in one query, load both sides from the content store, then diff and
allocate within the output budget.
"""
import logging
from collections.abc import Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from schemas.activity_diff import (
    ActivityDiffGroup,
    ActivityForDiff,
    DiffAllocation,
    DiffBudget,
    DiffRequest,
)
from schemas.page_version import StackedVersionRequest, VersionContentPair, version_pair_key
from services.activity_diff_service import MAX_DIFF_CONTENT_CHARS, group_activities_for_diff
from services.diff_budget import (
    MIN_USEFUL_DIFF_CHARS,
    allocate_diffs_within_budget,
    calculate_diff_budget,
)
from services.exceptions import ContentNotFoundError
from services.page_content_store import PageContentStore, build_page_content_store
from services.version_resolver import VersionResolver, version_resolver

logger = logging.getLogger(__name__)


class ActivityContextService:
    """Turns activity records into prioritized, size-bounded diffs."""

    def __init__(
        self,
        content_store: PageContentStore,
        resolver: VersionResolver = version_resolver,
        max_content_chars: int = MAX_DIFF_CONTENT_CHARS,
        min_useful_chars: int = MIN_USEFUL_DIFF_CHARS,
    ) -> None:
        self.content_store = content_store
        self.resolver = resolver
        self.max_content_chars = max_content_chars
        self.min_useful_chars = min_useful_chars

    def calculate_budget(self, total_output_budget: int) -> DiffBudget:
        """Split an output budget into diff budgets using this service's min_useful."""
        return calculate_diff_budget(total_output_budget, min_useful=self.min_useful_chars)

    async def build_activity_diffs(
        self,
        db: AsyncSession,
        activities: Sequence[ActivityForDiff],
        budget: DiffBudget,
        drive_id: str = "",
    ) -> list[DiffAllocation]:
        """
        Diff every logical edit in an activity feed within a budget.

        Groups whose first activity carries both a change group id and a content
        ref are resolved against page versions: the before side is read from that
        ref and the after side from the change group's latest version. Other
        groups (and groups with no matching version) fall back to the content
        snapshots on their first and last activity.

        Args:
            db: Database session used for the version lookup.
            activities: Activity records, in any order.
            budget: Output budget for the emitted diffs.
            drive_id: Drive the activities belong to, copied onto each request.

        Returns:
            One allocation per group that produced a diff, highest priority first.

        Raises:
            CorruptDataError: If a stored blob cannot be decoded.
        """
        groups = group_activities_for_diff(activities)
        if not groups:
            return []

        pairs = await self.resolver.resolve_stacked_version_content(
            db, [entry for g in groups if (entry := _stacked_request(g)) is not None],
        )

        contents: dict[str, str | None] = {}
        requests: list[DiffRequest] = []
        for group in groups:
            pair = None
            if group.first.change_group_id:
                pair = pairs.get(version_pair_key(group.first.page_id, group.first.change_group_id))

            if pair is not None:
                before, after = await self._load_pair(pair, group, contents)
            else:
                before, after = group.first.content, group.last.content

            requests.append(
                DiffRequest(
                    page_id=group.first.page_id,
                    drive_id=drive_id,
                    group=group,
                    before_content=before,
                    after_content=after,
                ),
            )

        logger.debug(
            "Built %d diff requests from %d activities (%d resolved from versions)",
            len(requests),
            len(activities),
            len(pairs),
        )
        return allocate_diffs_within_budget(requests, budget, self.max_content_chars)

    async def _load_pair(
        self,
        pair: VersionContentPair,
        group: ActivityDiffGroup,
        contents: dict[str, str | None],
    ) -> tuple[str | None, str | None]:
        before = group.first.content
        if pair.before_content_ref:
            loaded = await self._read_cached(pair.before_content_ref, contents)
            if loaded is not None:
                before = loaded

        after = await self._read_cached(pair.after_content_ref, contents)
        if after is None:
            after = group.last.content
        return before, after

    async def _read_cached(self, ref: str, contents: dict[str, str | None]) -> str | None:
        """Read a blob once per run. A missing blob yields None."""
        if ref not in contents:
            try:
                contents[ref] = await self.content_store.read_page_content(ref)
            except ContentNotFoundError:
                logger.warning("Content %s referenced by a page version is missing", ref)
                contents[ref] = None
        return contents[ref]


def build_activity_context_service() -> ActivityContextService:
    """Build the service over the default content store, with diff limits from settings."""
    settings = get_settings()
    return ActivityContextService(
        build_page_content_store(),
        max_content_chars=settings.diff_max_content_chars,
        min_useful_chars=settings.diff_min_useful_chars,
    )


def _stacked_request(group: ActivityDiffGroup) -> StackedVersionRequest | None:
    first = group.first
    if not first.change_group_id or not first.content_ref:
        return None
    return StackedVersionRequest(
        page_id=first.page_id,
        change_group_id=first.change_group_id,
        first_content_ref=first.content_ref,
    )
