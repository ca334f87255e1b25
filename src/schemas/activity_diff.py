"""Pydantic schemas for activity grouping, stacked diffs and diff budgets."""
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ActivityForDiff(BaseModel):
    """Minimal activity-feed record needed to build a diff."""

    id: str
    timestamp: datetime
    page_id: str | None = None
    resource_title: str | None = None
    change_group_id: str | None = None
    ai_conversation_id: str | None = None
    is_ai_generated: bool = False
    actor_email: str
    actor_display_name: str | None = None
    content: str | None = None  # Content snapshot at this activity
    content_ref: str | None = None  # Content store ref of that snapshot, when recorded


class ActivityDiffGroup(BaseModel):
    """Activities sharing a grouping key, sorted ascending by timestamp."""

    group_key: str
    first: ActivityForDiff
    last: ActivityForDiff
    activities: list[ActivityForDiff]


class DiffStats(BaseModel):
    """Line-level diff statistics."""

    additions: int = 0
    deletions: int = 0
    unchanged: int = 0
    total_changes: int = 0  # additions + deletions


class TimeRange(BaseModel):
    """Time span covered by a stacked diff."""

    model_config = ConfigDict(populate_by_name=True)

    from_: datetime = Field(alias="from")
    to: datetime


class StackedDiff(BaseModel):
    """A single diff covering every activity collapsed into one group."""

    page_id: str
    page_title: str | None
    change_group_id: str | None = None
    ai_conversation_id: str | None = None
    collapsed_count: int
    time_range: TimeRange
    actors: list[str]
    unified_diff: str
    stats: DiffStats
    is_ai_generated: bool
    truncated: bool = False


class DiffBudget(BaseModel):
    """Size constraints (in characters) for one allocation run."""

    total: int = Field(ge=0)
    per_item: int = Field(ge=0)
    min_useful: int = Field(default=200, ge=0)


class DiffRequest(BaseModel):
    """A before/after pair waiting to be diffed and budgeted."""

    page_id: str
    drive_id: str
    group: ActivityDiffGroup
    before_content: str | None = None
    after_content: str | None = None
    priority: float | None = None  # Defaults to the estimated change magnitude


class AllocationStatus(StrEnum):
    """Outcome of budget allocation for one request."""

    INCLUDED_FULL = "included_full"
    INCLUDED_TRUNCATED = "included_truncated"
    DROPPED = "dropped"


class DiffAllocation(BaseModel):
    """Budget allocation outcome for one request. diff is None when dropped."""

    request: DiffRequest
    status: AllocationStatus
    priority: float
    diff: StackedDiff | None = None
