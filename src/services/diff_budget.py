"""
Fit many diffs into a fixed output budget (e.g. an LLM context window).

Sizes are measured in characters of unified diff text. Two budgets apply at
once: a per-item cap and a global total. Items are handled greedily in
priority order; low-priority items that no longer fit are dropped, which is
a normal outcome and never an error.
"""
import logging
from collections.abc import Sequence

from schemas.activity_diff import (
    AllocationStatus,
    DiffAllocation,
    DiffBudget,
    DiffRequest,
    StackedDiff,
)
from services.activity_diff_service import (
    MAX_DIFF_CONTENT_CHARS,
    estimate_change_magnitude,
    generate_stacked_diff,
    TRUNCATION_MARKER,
    with_truncated_text,
)

logger = logging.getLogger(__name__)

TOTAL_BUDGET_RATIO = 0.4
PER_ITEM_BUDGET_RATIO = 0.1
MIN_USEFUL_DIFF_CHARS = 200
# A partial diff needs more than this many chars left to be worth emitting
MIN_PARTIAL_DIFF_CHARS = 500

DEFAULT_TOTAL_CHARS = 50_000
DEFAULT_PER_PAGE_CHARS = 10_000


def calculate_diff_budget(
    total_output_budget: int,
    min_useful: int = MIN_USEFUL_DIFF_CHARS,
) -> DiffBudget:
    """
    Split an output budget into diff budgets.

    40% of the output may be diffs in total, 10% may go to any single diff.
    """
    return DiffBudget(
        total=int(total_output_budget * TOTAL_BUDGET_RATIO),
        per_item=int(total_output_budget * PER_ITEM_BUDGET_RATIO),
        min_useful=min_useful,
    )


def _request_priority(request: DiffRequest) -> float:
    if request.priority is not None:
        return request.priority
    return estimate_change_magnitude(request.before_content, request.after_content)


def allocate_diffs_within_budget(
    requests: Sequence[DiffRequest],
    budget: DiffBudget,
    max_content_chars: int = MAX_DIFF_CONTENT_CHARS,
) -> list[DiffAllocation]:
    """
    Generate diffs in priority order until the budget runs out.

    Requests with no before/after content, or whose contents are identical,
    are skipped and produce no allocation. Every other request gets exactly
    one allocation, in priority order (descending, ties keep input order):

    - INCLUDED_FULL: fits both budgets as generated (after the per-item cap,
      if the cap did not cut anything).
    - INCLUDED_TRUNCATED: cut to the per-item cap, or cut to exactly the
      remaining total because at least min_useful (and more than the
      truncation marker) was left. Allocation stops after a diff is cut to
      the remaining total.
    - DROPPED: not emitted because the remaining total fell below min_useful
      or the truncation marker, or an earlier diff consumed the rest of it.
    """
    candidates = [
        r for r in requests if r.before_content is not None or r.after_content is not None
    ]
    prioritized = sorted(
        ((r, _request_priority(r)) for r in candidates),
        key=lambda pair: pair[1],
        reverse=True,
    )

    allocations: list[DiffAllocation] = []
    remaining = budget.total
    exhausted = False

    for request, priority in prioritized:
        if exhausted:
            allocations.append(
                DiffAllocation(request=request, status=AllocationStatus.DROPPED, priority=priority),
            )
            continue

        diff = generate_stacked_diff(
            request.before_content, request.after_content, request.group, max_content_chars,
        )
        if diff is None:
            logger.debug("No diff for page %s, skipping", request.page_id)
            continue

        diff = with_truncated_text(diff, budget.per_item)
        size = len(diff.unified_diff)

        if size <= remaining:
            status = (
                AllocationStatus.INCLUDED_TRUNCATED if diff.truncated
                else AllocationStatus.INCLUDED_FULL
            )
            allocations.append(
                DiffAllocation(request=request, status=status, priority=priority, diff=diff),
            )
            remaining -= size
            continue

        # Too little room for the marker leaves only a headless fragment
        if remaining >= budget.min_useful and remaining > len(TRUNCATION_MARKER):
            diff = with_truncated_text(diff, remaining)
            allocations.append(
                DiffAllocation(
                    request=request,
                    status=AllocationStatus.INCLUDED_TRUNCATED,
                    priority=priority,
                    diff=diff,
                ),
            )
            remaining -= len(diff.unified_diff)
        else:
            logger.debug(
                "Diff budget exhausted (%d chars left, %d needed) at page %s",
                remaining,
                size,
                request.page_id,
            )
            allocations.append(
                DiffAllocation(request=request, status=AllocationStatus.DROPPED, priority=priority),
            )
        exhausted = True

    return allocations


def generate_diffs_within_budget(
    requests: Sequence[DiffRequest],
    budget: DiffBudget,
    max_content_chars: int = MAX_DIFF_CONTENT_CHARS,
) -> list[StackedDiff]:
    """
    Emitted diffs of `allocate_diffs_within_budget`, highest priority first.

    Total emitted characters never exceed budget.total and no single diff
    exceeds budget.per_item.
    """
    return [
        allocation.diff
        for allocation in allocate_diffs_within_budget(requests, budget, max_content_chars)
        if allocation.diff is not None
    ]


def truncate_diffs_to_token_budget(
    diffs: Sequence[StackedDiff],
    total_budget: int = DEFAULT_TOTAL_CHARS,
    per_page_budget: int = DEFAULT_PER_PAGE_CHARS,
    min_partial_chars: int = MIN_PARTIAL_DIFF_CHARS,
) -> list[StackedDiff]:
    """
    Fit already-generated diffs into a total budget.

    Each diff is first capped at per_page_budget. Diffs are then ranked by
    additions + deletions (descending, ties keep input order) and accepted
    while they fit. The first diff that only partly fits is cut to exactly
    the remaining budget if more than min_partial_chars remain, otherwise it
    is dropped. Everything after it is dropped.
    """
    capped = [with_truncated_text(d, per_page_budget) for d in diffs]
    ranked = sorted(capped, key=lambda d: d.stats.additions + d.stats.deletions, reverse=True)

    result: list[StackedDiff] = []
    remaining = total_budget
    for diff in ranked:
        if remaining <= 0:
            break
        if len(diff.unified_diff) <= remaining:
            result.append(diff)
            remaining -= len(diff.unified_diff)
            continue
        if remaining > min_partial_chars:
            result.append(with_truncated_text(diff, remaining))
        break

    dropped = len(ranked) - len(result)
    if dropped:
        logger.debug("Dropped %d diffs over the %d char budget", dropped, total_budget)
    return result
