"""
Cash closing operations shared by the closing routes and the CSV import.

Every write goes through the ReconciliationEngine, so ``difference`` and
``status`` are always derived from the stored expected/counted values.
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session, joinedload

from closerflow.core.deps import scoped
from closerflow.core.profile_cache import UserProfile
from closerflow.core.reconciliation import ClosingLocked, ClosingStatus, ReconciliationEngine
from closerflow.core.roles import MANAGER_ROLES
from closerflow.models.cash_closing import CashClosing
from closerflow.models.store import Store

logger = logging.getLogger(__name__)


class StoreNotFound(LookupError):
    pass


class ClosingPermissionError(PermissionError):
    pass


def find_store(db: Session, store_id: int, user: UserProfile) -> Store:
    store = scoped(db.query(Store), Store, user).filter(Store.id == store_id).first()
    if not store:
        raise StoreNotFound(f"Loja {store_id} não encontrada")
    return store


def owning_organization(user: UserProfile, store: Store) -> Optional[int]:
    """Organization a new closing belongs to: the creator's, or the store's for super admins."""
    if user.organization_id is not None:
        return user.organization_id
    return store.organization_id


def list_closings(
    db: Session,
    user: UserProfile,
    store_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    status: Optional[str] = None,
) -> List[CashClosing]:
    query = scoped(db.query(CashClosing), CashClosing, user).options(
        joinedload(CashClosing.store),
        joinedload(CashClosing.creator),
        joinedload(CashClosing.validator),
    )
    if store_id:
        query = query.filter(CashClosing.store_id == store_id)
    if start_date:
        query = query.filter(CashClosing.date >= start_date)
    if end_date:
        query = query.filter(CashClosing.date <= end_date)
    if status:
        query = query.filter(CashClosing.status == status)
    return query.order_by(CashClosing.date.desc(), CashClosing.created_at.desc()).all()


def build_closing(
    engine: ReconciliationEngine,
    user: UserProfile,
    store: Store,
    closing_date: date,
    expected_value,
    counted_value,
    initial_value=Decimal("0"),
    observations: Optional[str] = None,
) -> CashClosing:
    closing = CashClosing(
        store_id=store.id,
        user_id=user.id,
        organization_id=owning_organization(user, store),
        date=closing_date,
        initial_value=initial_value or Decimal("0"),
        expected_value=expected_value,
        counted_value=counted_value,
        observations=observations or None,
        status="pendente",
    )
    engine.apply(closing)
    return closing


def ensure_can_modify(closing: CashClosing, user: UserProfile) -> None:
    """Employees only touch their own closings; managers and above any closing they can see."""
    if user.role in {r.value for r in MANAGER_ROLES}:
        return
    if closing.user_id != user.id:
        raise ClosingPermissionError("Você só pode alterar fechamentos registrados por você")


def update_closing(
    db: Session,
    engine: ReconciliationEngine,
    closing: CashClosing,
    user: UserProfile,
    store_id: int,
    closing_date: date,
    expected_value,
    counted_value,
    initial_value,
    observations: Optional[str],
) -> CashClosing:
    ensure_can_modify(closing, user)
    if closing.status == ClosingStatus.aprovado.value:
        raise ClosingLocked("Fechamento aprovado não pode ser alterado")
    store = find_store(db, store_id, user)
    closing.store_id = store.id
    closing.organization_id = owning_organization(user, store)
    closing.date = closing_date
    closing.initial_value = initial_value or Decimal("0")
    closing.expected_value = expected_value
    closing.counted_value = counted_value
    closing.observations = observations or None
    engine.apply(closing)
    return closing


def approve_closing(engine: ReconciliationEngine, closing: CashClosing, user: UserProfile) -> CashClosing:
    engine.approve(closing, user.id, now=datetime.now(timezone.utc))
    logger.info("closing %s approved by user %s", closing.id, user.id)
    return closing


def store_map_by_code(stores: Iterable[Store]) -> dict:
    mapping = {}
    for store in stores:
        mapping.setdefault(store.code, store)
    return mapping


def ambiguous_store_codes(stores: Iterable[Store]) -> set:
    """Codes shared by stores of different organizations (only visible to super admins)."""
    organizations_by_code = {}
    for store in stores:
        organizations_by_code.setdefault(store.code, set()).add(store.organization_id)
    return {code for code, organizations in organizations_by_code.items() if len(organizations) > 1}
