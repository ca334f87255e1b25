"""Pydantic schemas for page version creation and resolution."""
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from models.page_version import ChangeGroupType, PageVersionSource


class CreatePageVersionInput(BaseModel):
    """Input for creating a page version."""

    page_id: str
    drive_id: str
    content: str
    page_revision: int = Field(ge=0)
    state_hash: str
    source: PageVersionSource = PageVersionSource.AUTO
    content_format: str | None = None  # Detected from content when omitted
    created_by: str | None = None
    label: str | None = None
    reason: str | None = None
    change_group_id: str | None = None
    change_group_type: ChangeGroupType | None = None
    metadata: dict[str, Any] | None = None


class CreatePageVersionResult(BaseModel):
    """Result of creating a page version."""

    id: UUID
    content_ref: str
    content_size: int  # Original, uncompressed size
    compressed: bool
    stored_size: int
    compression_ratio: float


class PageStateHashInput(BaseModel):
    """
    Fields that make up a page's canonical state.

    The optional fields only take part in the hash when they were explicitly
    provided (even as None), so adding one changes the digest. Unknown
    fields are rejected rather than silently left out of the hash.
    """

    model_config = ConfigDict(extra="forbid")

    title: str | None
    content_ref: str | None
    parent_id: str | None
    position: float
    is_trashed: bool
    type: str
    drive_id: str

    ai_provider: str | None = None
    ai_model: str | None = None
    system_prompt: str | None = None
    enabled_tools: list[str] | None = None
    is_paginated: bool | None = None
    include_drive_prompt: bool | None = None
    agent_definition: str | None = None
    visible_to_global_assistant: bool | None = None
    include_page_tree: bool | None = None
    page_tree_scope: str | None = None


class VersionResolveRequest(BaseModel):
    """Request to resolve the before/after content refs of a change group."""

    page_id: str
    change_group_id: str
    activity_content_ref: str | None = None


class StackedVersionRequest(BaseModel):
    """Request to resolve a collapsed (stacked) activity group."""

    page_id: str
    change_group_id: str
    first_content_ref: str | None = None  # Content ref recorded by the group's earliest activity


class VersionContentPair(BaseModel):
    """Before/after content refs for a change group on one page."""

    model_config = ConfigDict(frozen=True)

    page_id: str
    change_group_id: str
    before_content_ref: str | None
    after_content_ref: str
    before_revision: int
    after_revision: int


def version_pair_key(page_id: str, change_group_id: str) -> str:
    """Composite key used by batch resolution results: "{page_id}:{change_group_id}"."""
    return f"{page_id}:{change_group_id}"
