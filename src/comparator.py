"""
Period-over-period comparison of aggregated category data.

A missing previous value means there is no comparison basis and yields no
difference at all; an unchanged value is not reported either. Workers absent
from the previous period are flagged as new instead of getting a diff against
zero.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Union

from models import AggregatedPeriod, ComparisonResult, DifferenceCalculation, WorkerChange

Number = Union[int, Decimal]

HUNDRED = Decimal("100")
CENT = Decimal("0.01")
DEFAULT_TOP_CHANGES = 5


def _percent(diff: Decimal, previous: Decimal) -> Decimal:
    if previous == 0:
        return Decimal("100.00")
    return (diff / previous * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_difference(
    current: Number, previous: Optional[Number]
) -> Optional[DifferenceCalculation]:
    """
    Difference between a current and previous value.

    >>> calculate_difference(150, 100)
    DifferenceCalculation(diff=Decimal('50'), percent_change='50.00')
    """
    if previous is None:
        return None
    current, previous = Decimal(current), Decimal(previous)
    if current == previous:
        return None
    if previous == 0:
        return DifferenceCalculation(diff=current, percent_change="100.00")
    diff = current - previous
    return DifferenceCalculation(diff=diff, percent_change=format(_percent(diff, previous), "f"))


def _worker_changes(
    current: AggregatedPeriod, previous: Optional[AggregatedPeriod]
) -> List[WorkerChange]:
    previous_amounts: Dict[str, Decimal] = previous.per_worker if previous else {}
    changes: List[WorkerChange] = []
    for worker_id, amount in current.per_worker.items():
        profile = current.workers.get(worker_id)
        change = WorkerChange(
            worker_id=worker_id,
            name=profile.name if profile else "N/A",
            role=profile.role if profile else "N/A",
            status=profile.status if profile else "active",
            current_amount=amount,
        )
        previous_amount = previous_amounts.get(worker_id)
        if previous_amount is None:
            change.is_new = True
        else:
            diff = amount - previous_amount
            change.previous_amount = previous_amount
            change.diff = diff
            change.percent_change = _percent(diff, previous_amount)
        changes.append(change)
    return changes


def rank_top_changes(
    changes: List[WorkerChange], limit: int = DEFAULT_TOP_CHANGES
) -> List[WorkerChange]:
    """
    Tag the `limit` largest absolute non-zero diffs as top changes.

    Tags are set on the items of `changes` itself so renderers can highlight
    them in place; the ranked subset is returned in descending order.
    """
    candidates = [c for c in changes if c.diff is not None and c.diff != 0]
    ranked = sorted(candidates, key=lambda c: abs(c.diff), reverse=True)[:limit]
    for change in ranked:
        change.is_top_change = True
    return ranked


def compare(
    current: AggregatedPeriod,
    previous: Optional[AggregatedPeriod],
    top_n: int = DEFAULT_TOP_CHANGES,
) -> ComparisonResult:
    """Compare one category's current period against its previous period."""
    changes = _worker_changes(current, previous)
    top_changes = rank_top_changes(changes, top_n)

    removed: List[str] = []
    if previous is not None:
        removed = [w for w in previous.per_worker if w not in current.per_worker]

    return ComparisonResult(
        cost_diff=calculate_difference(
            current.total_cost, previous.total_cost if previous else None
        ),
        count_diff=calculate_difference(
            current.worker_count, previous.worker_count if previous else None
        ),
        per_worker_changes=changes,
        top_changes=top_changes,
        removed_worker_ids=removed,
    )
