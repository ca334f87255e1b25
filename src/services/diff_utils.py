r"""
Content diffing built on diff-match-patch.

Two granularities:

- Line level (`generate_unified_diff`, `diff_line_stats`): diff-match-patch's
  line mode maps each distinct line to one character, diffs those, and maps
  back. Output is a git-style unified diff.
- Character level (`diff_content`): semantic-cleaned character diff with
  stats, used for human-readable summaries.
"""
from dataclasses import dataclass, field

from diff_match_patch import diff_match_patch

from schemas.activity_diff import DiffStats

CONTEXT_LINES = 3
NO_NEWLINE_MARKER = "\\ No newline at end of file"

_dmp = diff_match_patch()
_dmp.Diff_Timeout = 1.0


@dataclass
class DiffChange:
    """A run of characters that was added, removed or kept."""

    type: str  # "add" | "remove" | "unchanged"
    value: str


@dataclass
class ContentDiffResult:
    """Result of a character-level content comparison."""

    changes: list[DiffChange] = field(default_factory=list)
    stats: DiffStats = field(default_factory=DiffStats)
    is_identical: bool = False


def _line_ops(old: str, new: str) -> list[tuple[int, str]]:
    """Return (operation, line) pairs, one per line, in output order."""
    chars_old, chars_new, line_array = _dmp.diff_linesToChars(old, new)
    diffs = _dmp.diff_main(chars_old, chars_new, False)
    _dmp.diff_charsToLines(diffs, line_array)

    ops: list[tuple[int, str]] = []
    for op, text in diffs:
        ops.extend((op, line) for line in text.splitlines(keepends=True))
    return ops


def diff_line_stats(old: str, new: str) -> DiffStats:
    """Count added, deleted and unchanged lines between two texts."""
    stats = DiffStats()
    for op, _ in _line_ops(old, new):
        if op == diff_match_patch.DIFF_INSERT:
            stats.additions += 1
        elif op == diff_match_patch.DIFF_DELETE:
            stats.deletions += 1
        else:
            stats.unchanged += 1
    stats.total_changes = stats.additions + stats.deletions
    return stats


def _hunk_range(start: int, length: int) -> str:
    # Unified diff ranges are 1-based; an empty range names the line before it
    if length == 0:
        return f"{start},0"
    if length == 1:
        return f"{start + 1}"
    return f"{start + 1},{length}"


def _format_line(prefix: str, line: str) -> list[str]:
    if line.endswith("\n"):
        return [prefix + line[:-1]]
    return [prefix + line, NO_NEWLINE_MARKER]


def generate_unified_diff(
    old_content: str | None,
    new_content: str | None,
    old_label: str = "original",
    new_label: str = "modified",
    context: int = CONTEXT_LINES,
) -> str:
    """
    Generate a git-style unified diff.

    Args:
        old_content: Original content (None is treated as empty).
        new_content: New content (None is treated as empty).
        old_label: Label for the "---" header.
        new_label: Label for the "+++" header.
        context: Unchanged lines kept around each change.

    Returns:
        Header lines followed by "@@" hunks. Identical inputs yield headers only.
    """
    ops = _line_ops(old_content or "", new_content or "")
    out = [f"--- {old_label}", f"+++ {new_label}"]

    changed = [i for i, (op, _) in enumerate(ops) if op != diff_match_patch.DIFF_EQUAL]
    if not changed:
        return "\n".join(out) + "\n"

    # Line number reached in old/new before index i
    old_pos = [0] * (len(ops) + 1)
    new_pos = [0] * (len(ops) + 1)
    for i, (op, _) in enumerate(ops):
        old_pos[i + 1] = old_pos[i] + (op != diff_match_patch.DIFF_INSERT)
        new_pos[i + 1] = new_pos[i] + (op != diff_match_patch.DIFF_DELETE)

    # Merge changes whose context windows touch
    spans: list[tuple[int, int]] = []
    start = end = changed[0]
    for i in changed[1:]:
        if i - end > 2 * context:
            spans.append((start, end))
            start = i
        end = i
    spans.append((start, end))

    for span_start, span_end in spans:
        lo = max(0, span_start - context)
        hi = min(len(ops), span_end + context + 1)
        out.append(
            f"@@ -{_hunk_range(old_pos[lo], old_pos[hi] - old_pos[lo])} "
            f"+{_hunk_range(new_pos[lo], new_pos[hi] - new_pos[lo])} @@",
        )
        for op, line in ops[lo:hi]:
            if op == diff_match_patch.DIFF_INSERT:
                out.extend(_format_line("+", line))
            elif op == diff_match_patch.DIFF_DELETE:
                out.extend(_format_line("-", line))
            else:
                out.extend(_format_line(" ", line))

    return "\n".join(out) + "\n"


def diff_content(old_content: str | None, new_content: str | None) -> ContentDiffResult:
    """
    Character-level diff with semantic cleanup.

    Stats count characters; total_changes counts add/remove runs.
    """
    old = old_content or ""
    new = new_content or ""
    diffs = _dmp.diff_main(old, new)
    _dmp.diff_cleanupSemantic(diffs)

    result = ContentDiffResult(is_identical=old == new)
    for op, text in diffs:
        if op == diff_match_patch.DIFF_INSERT:
            result.changes.append(DiffChange(type="add", value=text))
            result.stats.additions += len(text)
            result.stats.total_changes += 1
        elif op == diff_match_patch.DIFF_DELETE:
            result.changes.append(DiffChange(type="remove", value=text))
            result.stats.deletions += len(text)
            result.stats.total_changes += 1
        else:
            result.changes.append(DiffChange(type="unchanged", value=text))
            result.stats.unchanged += len(text)
    return result


def summarize_diff(result: ContentDiffResult) -> str:
    """Human-readable one-line summary of a character-level diff."""
    if result.is_identical:
        return "No changes detected"

    stats = result.stats
    total = stats.additions + stats.deletions + stats.unchanged
    parts = []
    if stats.additions > 0:
        parts.append(f"+{stats.additions} characters ({stats.additions / total * 100:.1f}%)")
    if stats.deletions > 0:
        parts.append(f"-{stats.deletions} characters ({stats.deletions / total * 100:.1f}%)")
    if not parts:
        return "No significant changes"
    return ", ".join(parts)
