"""Page content format detection."""
import json
import re
from enum import StrEnum


class PageContentFormat(StrEnum):
    """Serialization format of a page's content."""

    TEXT = "text"
    HTML = "html"
    JSON = "json"
    TIPTAP = "tiptap"  # Rich-text editor document: {"type": "doc", "content": [...]}


_HTML_PATTERN = re.compile(r"^\s*<(!doctype\s+html|[a-zA-Z][a-zA-Z0-9-]*)(\s[^>]*)?/?>", re.IGNORECASE)


def detect_page_content_format(content: str | None) -> PageContentFormat:
    """
    Detect content format from structural markers.

    JSON objects whose "type" is "doc" are tiptap documents, other JSON
    objects/arrays are plain JSON, markup starting with a tag is HTML, and
    everything else (including empty content) is plain text.
    """
    if not content:
        return PageContentFormat.TEXT

    stripped = content.lstrip()
    if stripped[:1] in ("{", "["):
        try:
            parsed = json.loads(content)
        except ValueError:
            parsed = None
        if isinstance(parsed, dict):
            if parsed.get("type") == "doc":
                return PageContentFormat.TIPTAP
            return PageContentFormat.JSON
        if isinstance(parsed, list):
            return PageContentFormat.JSON

    if _HTML_PATTERN.match(content):
        return PageContentFormat.HTML

    return PageContentFormat.TEXT
