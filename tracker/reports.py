from collections import defaultdict
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple

from tracker.domain import AppData, Expense, Income, Segment


def total_income(incomes: Iterable[Income]) -> float:
    return sum(i.amount for i in incomes)


def total_expenses(expenses: Iterable[Expense]) -> float:
    return sum(e.amount for e in expenses)


def remaining_balance(data: AppData) -> float:
    return total_income(data.incomes) - total_expenses(data.expenses)


def spent_by_segment(expenses: Iterable[Expense], segments: Iterable[Segment] = ()) -> Dict[str, float]:
    """Expense totals keyed by segment id; listed segments start at zero."""
    totals: Dict[str, float] = {s.id: 0.0 for s in segments}
    for e in expenses:
        totals[e.segment_id] = totals.get(e.segment_id, 0.0) + e.amount
    return totals


class SegmentSummary(NamedTuple):
    segment: Segment
    spent: float

    @property
    def remaining(self) -> float:
        return self.segment.allocated_amount - self.spent

    @property
    def over_budget(self) -> bool:
        return self.spent > self.segment.allocated_amount


def segment_summaries(data: AppData) -> List[SegmentSummary]:
    spent = spent_by_segment(data.expenses, data.segments)
    return [SegmentSummary(s, spent[s.id]) for s in data.segments]


def unallocated_income(data: AppData) -> float:
    return total_income(data.incomes) - sum(s.allocated_amount for s in data.segments)


def top_segments(data: AppData, k: int) -> Iterator[Tuple[str, float]]:
    names = {s.id: s.name for s in data.segments}
    ordered = sorted(
        ((names.get(sid, sid), total) for sid, total in spent_by_segment(data.expenses).items()),
        key=lambda item: item[1],
        reverse=True,
    )
    for name, total in ordered[: max(0, k)]:
        yield name, total


def monthly_expenses(expenses: Iterable[Expense]) -> Dict[str, float]:
    """Expense totals per ``YYYY-MM`` (UTC), oldest month first."""
    months: Dict[str, float] = defaultdict(float)
    for e in expenses:
        months[e.timestamp.strftime("%Y-%m")] += e.amount
    return dict(sorted(months.items()))


def recent_expenses(expenses: Iterable[Expense], limit: Optional[int] = None) -> List[Expense]:
    ordered = sorted(expenses, key=lambda e: e.timestamp, reverse=True)
    return ordered if limit is None else ordered[:limit]


def dashboard_summary(data: AppData) -> Dict[str, float]:
    income = total_income(data.incomes)
    spent = total_expenses(data.expenses)
    return {
        "total_income": income,
        "total_expenses": spent,
        "balance": income - spent,
        "unallocated": unallocated_income(data),
    }
