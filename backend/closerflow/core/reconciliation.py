"""
Reconciliation of a cash closing: difference, status and approval.

Status lifecycle of a closing::

    pendente --(values recorded)--> ok | atencao --(approve)--> aprovado

``pendente`` is only the column default for rows that never went through the
engine. Nothing leaves ``aprovado``: approved closings can be neither
re-approved nor edited.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from closerflow.core.money import TWO_PLACES, to_amount


class ClosingStatus(str, Enum):
    ok = "ok"
    atencao = "atencao"
    pendente = "pendente"
    aprovado = "aprovado"


APPROVABLE_STATUSES = {ClosingStatus.ok, ClosingStatus.atencao}


class InvalidStatusTransition(ValueError):
    """Raised when a closing is asked to move to a status it cannot reach."""


class ClosingLocked(InvalidStatusTransition):
    """Raised when an approved closing would be recomputed."""


@dataclass(frozen=True)
class Reconciliation:
    difference: Decimal
    status: ClosingStatus


def compute_difference(expected: Any, counted: Any) -> Decimal:
    """counted - expected, sign preserved. Unparseable inputs count as zero."""
    return (to_amount(counted) - to_amount(expected)).quantize(TWO_PLACES)


def classify_status(difference: Any, tolerance_limit: Any) -> ClosingStatus:
    if abs(to_amount(difference)) <= to_amount(tolerance_limit):
        return ClosingStatus.ok
    return ClosingStatus.atencao


class ReconciliationEngine:
    def __init__(self, tolerance_limit: Any):
        self.tolerance_limit = to_amount(tolerance_limit)

    def reconcile(self, expected: Any, counted: Any) -> Reconciliation:
        difference = compute_difference(expected, counted)
        return Reconciliation(difference=difference, status=classify_status(difference, self.tolerance_limit))

    def apply(self, closing) -> Reconciliation:
        """Recompute ``difference`` and ``status`` of a closing from its current values."""
        if closing.status == ClosingStatus.aprovado.value:
            raise ClosingLocked("Fechamento aprovado não pode ser alterado")
        result = self.reconcile(closing.expected_value, closing.counted_value)
        closing.difference = result.difference
        closing.status = result.status.value
        return result

    def approve(self, closing, user_id: int, now: Optional[datetime] = None):
        current = ClosingStatus(closing.status)
        if current not in APPROVABLE_STATUSES:
            raise InvalidStatusTransition(
                f"Fechamento com status '{current.value}' não pode ser aprovado"
            )
        closing.status = ClosingStatus.aprovado.value
        closing.validated_by = user_id
        closing.validated_at = now or datetime.now(timezone.utc)
        return closing
