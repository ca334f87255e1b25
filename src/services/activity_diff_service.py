"""
Stacked diffs from activity logs.

Collapses runs of saves (an AI conversation streaming edits, or an edit
session sharing a change group) into one before/after diff per page so AI
context can show actual content changes instead of metadata.
"""
import logging
import math
from collections.abc import Iterable, Sequence

from schemas.activity_diff import (
    ActivityDiffGroup,
    ActivityForDiff,
    DiffStats,
    StackedDiff,
    TimeRange,
)
from services.diff_utils import diff_line_stats, generate_unified_diff

logger = logging.getLogger(__name__)

# Either side larger than this (in characters) skips line-level diffing
MAX_DIFF_CONTENT_CHARS = 50 * 1024

LARGE_CONTENT_NOTICE = "[Content too large for diff - showing stats only]"
TRUNCATION_MARKER = "... [diff truncated] ..."


def activity_group_key(activity: ActivityForDiff) -> str:
    """
    Grouping key for an activity.

    AI conversation beats change group; anything else stands alone.
    """
    if activity.ai_conversation_id:
        return f"ai:{activity.page_id}:{activity.ai_conversation_id}"
    if activity.change_group_id:
        return f"cg:{activity.page_id}:{activity.change_group_id}"
    return f"single:{activity.id}"


def group_activities_for_diff(activities: Iterable[ActivityForDiff]) -> list[ActivityDiffGroup]:
    """
    Group activities that belong to one logical edit.

    Activities without a page are dropped. Groups are returned in the order
    their key was first encountered; members are sorted ascending by
    timestamp (stable for equal timestamps) and first/last are taken after
    sorting.
    """
    buckets: dict[str, list[ActivityForDiff]] = {}
    for activity in activities:
        if not activity.page_id:
            continue
        buckets.setdefault(activity_group_key(activity), []).append(activity)

    groups = []
    for key, members in buckets.items():
        ordered = sorted(members, key=lambda a: a.timestamp)
        groups.append(
            ActivityDiffGroup(group_key=key, first=ordered[0], last=ordered[-1], activities=ordered),
        )
    return groups


def unique_actors(activities: Iterable[ActivityForDiff]) -> list[str]:
    """Distinct actor names (display name, else email) in first-seen order."""
    seen: dict[str, None] = {}
    for activity in activities:
        seen.setdefault(activity.actor_display_name or activity.actor_email, None)
    return list(seen)


def estimate_change_magnitude(before: str | None, after: str | None) -> float:
    """
    Estimate how significant a change is, for prioritization only.

    Creation and deletion score the length of the surviving side. A
    modification scores the length delta plus the square root of the average
    length, so a one-character edit to a huge document still ranks above zero
    while genuinely large rewrites are dominated by the linear term.
    """
    before_len = len(before or "")
    after_len = len(after or "")
    if before_len == 0 and after_len == 0:
        return 0
    if before_len == 0:
        return after_len
    if after_len == 0:
        return before_len
    return abs(after_len - before_len) + math.sqrt((before_len + after_len) / 2)


def _large_content_stats(old: str, new: str) -> DiffStats:
    additions = max(len(new) - len(old), 0)
    deletions = max(len(old) - len(new), 0)
    return DiffStats(
        additions=additions,
        deletions=deletions,
        unchanged=min(len(old), len(new)),
        total_changes=additions + deletions,
    )


def generate_stacked_diff(
    before_content: str | None,
    after_content: str | None,
    group: ActivityDiffGroup,
    max_content_chars: int = MAX_DIFF_CONTENT_CHARS,
) -> StackedDiff | None:
    """
    Build one diff for a whole activity group.

    Args:
        before_content: Content before the group's first activity (None for creation).
        after_content: Content after the group's last activity (None for deletion).
        group: The activity group the diff describes.
        max_content_chars: Above this size on either side, emit approximate
            length-based stats instead of a line diff.

    Returns:
        StackedDiff, or None when there is nothing to show (both sides empty or
        identical).
    """
    old = before_content or ""
    new = after_content or ""
    if old == new:
        return None

    title = group.last.resource_title or "Untitled"
    header = f"--- {title} (before)\n+++ {title} (after)\n"

    if len(old) > max_content_chars or len(new) > max_content_chars:
        logger.debug(
            "Skipping line diff for %s: %d -> %d chars exceeds %d",
            group.group_key,
            len(old),
            len(new),
            max_content_chars,
        )
        unified = header + LARGE_CONTENT_NOTICE + "\n"
        stats = _large_content_stats(old, new)
    else:
        unified = generate_unified_diff(old, new, f"{title} (before)", f"{title} (after)")
        stats = diff_line_stats(old, new)

    return StackedDiff(
        page_id=group.first.page_id,
        page_title=group.last.resource_title,
        change_group_id=group.first.change_group_id,
        ai_conversation_id=group.first.ai_conversation_id,
        collapsed_count=len(group.activities),
        time_range=TimeRange(from_=group.first.timestamp, to=group.last.timestamp),
        actors=unique_actors(group.activities),
        unified_diff=unified,
        stats=stats,
        is_ai_generated=any(a.is_ai_generated for a in group.activities),
    )


def truncate_diff_content(diff_text: str, max_chars: int) -> str:
    """
    Cut diff text to at most max_chars, ending with the truncation marker.

    Keeps whole lines where possible. If not even the marker fits, the text is
    hard-sliced to max_chars.
    """
    if len(diff_text) <= max_chars:
        return diff_text
    if max_chars <= len(TRUNCATION_MARKER):
        return diff_text[:max_chars]

    room = max_chars - len(TRUNCATION_MARKER)
    cut = diff_text.rfind("\n", 0, room)
    if cut == -1:
        # No line boundary fits; keep a partial first line
        return diff_text[:room] + TRUNCATION_MARKER
    return diff_text[: cut + 1] + TRUNCATION_MARKER


def with_truncated_text(diff: StackedDiff, max_chars: int) -> StackedDiff:
    """Return diff with its text cut to max_chars, tagged when anything was cut."""
    if len(diff.unified_diff) <= max_chars:
        return diff
    return diff.model_copy(
        update={"unified_diff": truncate_diff_content(diff.unified_diff, max_chars), "truncated": True},
    )


def diff_size(diffs: Sequence[StackedDiff]) -> int:
    """Total emitted characters across diffs."""
    return sum(len(d.unified_diff) for d in diffs)
