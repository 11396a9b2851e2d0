"""
Aggregates over a set of closings, used by the dashboard and by the chat analysis.
"""
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, Iterable, List, TypedDict

from closerflow.core.money import ZERO, to_amount
from closerflow.core.reconciliation import ClosingStatus


class ClosingStats(TypedDict):
    """Period summary sent to the analysis endpoint and shown on the dashboard."""
    total_expected: Decimal
    total_counted: Decimal
    total_difference: Decimal
    surplus: Decimal
    surplus_count: int
    deficit: Decimal
    deficit_count: int
    ok_count: int
    attention_count: int
    pending_count: int
    total_closings: int
    accuracy_rate: float


class DailyPoint(TypedDict):
    date: str
    expected: Decimal
    counted: Decimal
    difference: Decimal
    closings: int


def summarize(closings: Iterable) -> ClosingStats:
    stats: ClosingStats = {
        "total_expected": ZERO,
        "total_counted": ZERO,
        "total_difference": ZERO,
        "surplus": ZERO,
        "surplus_count": 0,
        "deficit": ZERO,
        "deficit_count": 0,
        "ok_count": 0,
        "attention_count": 0,
        "pending_count": 0,
        "total_closings": 0,
        "accuracy_rate": 0.0,
    }
    for closing in closings:
        difference = to_amount(closing.difference)
        stats["total_expected"] += to_amount(closing.expected_value)
        stats["total_counted"] += to_amount(closing.counted_value)
        stats["total_difference"] += difference
        stats["total_closings"] += 1

        if difference > 0:
            stats["surplus"] += difference
            stats["surplus_count"] += 1
        elif difference < 0:
            stats["deficit"] += abs(difference)
            stats["deficit_count"] += 1

        # Approved closings count as accurate
        if closing.status in (ClosingStatus.ok.value, ClosingStatus.aprovado.value):
            stats["ok_count"] += 1
        elif closing.status == ClosingStatus.atencao.value:
            stats["attention_count"] += 1
        elif closing.status == ClosingStatus.pendente.value:
            stats["pending_count"] += 1

    if stats["total_closings"]:
        stats["accuracy_rate"] = round(stats["ok_count"] / stats["total_closings"] * 100, 1)
    return stats


def daily_evolution(closings: Iterable) -> List[DailyPoint]:
    """Per-day totals in ascending date order (chart series)."""
    days: Dict[str, DailyPoint] = {}
    for closing in closings:
        key = closing.date.isoformat()
        point = days.setdefault(
            key,
            {"date": key, "expected": ZERO, "counted": ZERO, "difference": ZERO, "closings": 0},
        )
        point["expected"] += to_amount(closing.expected_value)
        point["counted"] += to_amount(closing.counted_value)
        point["difference"] += to_amount(closing.difference)
        point["closings"] += 1
    return list(OrderedDict(sorted(days.items())).values())
