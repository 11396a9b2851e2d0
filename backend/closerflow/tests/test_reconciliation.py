from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from closerflow.core.reconciliation import (
    ClosingLocked,
    ClosingStatus,
    InvalidStatusTransition,
    ReconciliationEngine,
    classify_status,
    compute_difference,
)

TOLERANCE = Decimal("10.00")


def make_closing(expected, counted, status="pendente"):
    return SimpleNamespace(
        expected_value=Decimal(expected),
        counted_value=Decimal(counted),
        difference=None,
        status=status,
        validated_by=None,
        validated_at=None,
    )


def test_exact_match_is_ok():
    result = ReconciliationEngine(TOLERANCE).reconcile(Decimal("15420.50"), Decimal("15420.50"))
    assert result.difference == Decimal("0.00")
    assert result.status == ClosingStatus.ok


def test_shortfall_beyond_tolerance_needs_attention():
    result = ReconciliationEngine(TOLERANCE).reconcile(Decimal("8950.00"), Decimal("8920.00"))
    assert result.difference == Decimal("-30.00")
    assert result.status == ClosingStatus.atencao


def test_small_surplus_is_ok():
    result = ReconciliationEngine(TOLERANCE).reconcile(Decimal("5670.00"), Decimal("5675.00"))
    assert result.difference == Decimal("5.00")
    assert result.status == ClosingStatus.ok


def test_surplus_beyond_tolerance_needs_attention():
    result = ReconciliationEngine(TOLERANCE).reconcile(Decimal("100.00"), Decimal("130.00"))
    assert result.difference == Decimal("30.00")
    assert result.status == ClosingStatus.atencao


@pytest.mark.parametrize("difference", ["10.00", "-10.00", "0.01", "-9.99"])
def test_tolerance_boundary_is_inclusive(difference):
    assert classify_status(Decimal(difference), TOLERANCE) == ClosingStatus.ok


@pytest.mark.parametrize("difference", ["10.01", "-10.01"])
def test_just_past_tolerance(difference):
    assert classify_status(Decimal(difference), TOLERANCE) == ClosingStatus.atencao


def test_difference_has_no_float_drift():
    assert compute_difference(Decimal("0.10"), Decimal("0.30")) == Decimal("0.20")
    assert compute_difference("1.234,56", "1.234,57") == Decimal("0.01")


def test_unparseable_inputs_count_as_zero():
    assert compute_difference("abc", Decimal("12.00")) == Decimal("12.00")
    assert compute_difference(float("nan"), None) == Decimal("0.00")


def test_tolerance_comes_from_the_engine():
    strict = ReconciliationEngine(Decimal("1.00"))
    assert strict.reconcile(Decimal("100"), Decimal("105")).status == ClosingStatus.atencao


def test_apply_is_idempotent():
    engine = ReconciliationEngine(TOLERANCE)
    closing = make_closing("8950.00", "8920.00")
    engine.apply(closing)
    first = (closing.difference, closing.status)
    engine.apply(closing)
    assert (closing.difference, closing.status) == first == (Decimal("-30.00"), "atencao")


def test_approve_stamps_validator_once():
    engine = ReconciliationEngine(TOLERANCE)
    closing = make_closing("8950.00", "8920.00")
    engine.apply(closing)
    stamp = datetime(2024, 12, 30, 10, 0, tzinfo=timezone.utc)
    engine.approve(closing, user_id=7, now=stamp)
    assert closing.status == "aprovado"
    assert closing.validated_by == 7
    assert closing.validated_at == stamp

    with pytest.raises(InvalidStatusTransition):
        engine.approve(closing, user_id=8, now=datetime(2025, 1, 2, tzinfo=timezone.utc))
    assert closing.validated_at == stamp
    assert closing.validated_by == 7


def test_pending_cannot_be_approved():
    closing = make_closing("10", "10", status="pendente")
    with pytest.raises(InvalidStatusTransition):
        ReconciliationEngine(TOLERANCE).approve(closing, user_id=1)
    assert closing.validated_at is None


def test_approved_closing_is_locked():
    closing = make_closing("10", "50", status="aprovado")
    with pytest.raises(ClosingLocked):
        ReconciliationEngine(TOLERANCE).apply(closing)
    assert closing.difference is None
