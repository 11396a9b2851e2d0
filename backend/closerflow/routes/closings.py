import datetime as dt
import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, condecimal
from sqlalchemy.orm import Session

from closerflow.core.database import get_db
from closerflow.core.deps import (
    commit_or_400,
    get_current_user,
    get_reconciliation_engine,
    get_scoped_or_404,
    require_manager,
)
from closerflow.core.profile_cache import UserProfile
from closerflow.core.reconciliation import ClosingStatus, InvalidStatusTransition, ReconciliationEngine
from closerflow.core.roles import can_delete
from closerflow.models.cash_closing import CashClosing
from closerflow.services import closing_service, stats_service

router = APIRouter()
logger = logging.getLogger(__name__)

Money = condecimal(max_digits=12, decimal_places=2)


class ClosingIn(BaseModel):
    store_id: int
    date: dt.date
    initial_value: Money = Decimal("0")
    expected_value: Money
    counted_value: Money
    observations: Optional[str] = None


class ClosingOut(BaseModel):
    id: int
    store_id: int
    store_name: Optional[str] = None
    store_code: Optional[str] = None
    organization_id: Optional[int] = None
    date: dt.date
    initial_value: Decimal
    expected_value: Decimal
    counted_value: Decimal
    difference: Decimal
    status: ClosingStatus
    observations: Optional[str] = None
    created_by: Optional[int] = None
    created_by_name: Optional[str] = None
    validated_by: Optional[int] = None
    validated_by_name: Optional[str] = None
    validated_at: Optional[dt.datetime] = None
    created_at: dt.datetime
    updated_at: dt.datetime

    class Config:
        from_attributes = True


class ClosingStatsOut(BaseModel):
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
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


class DailyPointOut(BaseModel):
    date: dt.date
    expected: Decimal
    counted: Decimal
    difference: Decimal
    closings: int


def _store_or_400(db: Session, store_id: int, user: UserProfile):
    try:
        return closing_service.find_store(db, store_id, user)
    except closing_service.StoreNotFound as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/", response_model=List[ClosingOut])
def list_closings(
    store_id: Optional[int] = Query(None),
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    status_filter: Optional[ClosingStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    return closing_service.list_closings(
        db,
        user,
        store_id=store_id,
        start_date=start_date,
        end_date=end_date,
        status=status_filter.value if status_filter else None,
    )


@router.get("/stats", response_model=ClosingStatsOut)
def closing_stats(
    store_id: Optional[int] = Query(None),
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    """Totals, surplus/deficit and accuracy rate for the filtered closings"""
    closings = closing_service.list_closings(db, user, store_id=store_id, start_date=start_date, end_date=end_date)
    return {"start_date": start_date, "end_date": end_date, **stats_service.summarize(closings)}


@router.get("/evolution", response_model=List[DailyPointOut])
def closing_evolution(
    store_id: Optional[int] = Query(None),
    start_date: Optional[dt.date] = Query(None),
    end_date: Optional[dt.date] = Query(None),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    closings = closing_service.list_closings(db, user, store_id=store_id, start_date=start_date, end_date=end_date)
    return stats_service.daily_evolution(closings)


@router.get("/{closing_id}", response_model=ClosingOut)
def get_closing(
    closing_id: int,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    return get_scoped_or_404(db, CashClosing, closing_id, user, "Fechamento não encontrado")


@router.post("/", response_model=ClosingOut, status_code=status.HTTP_201_CREATED)
def create_closing(
    data: ClosingIn,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    store = _store_or_400(db, data.store_id, user)
    closing = closing_service.build_closing(
        engine,
        user,
        store,
        closing_date=data.date,
        expected_value=data.expected_value,
        counted_value=data.counted_value,
        initial_value=data.initial_value,
        observations=data.observations,
    )
    db.add(closing)
    commit_or_400(db, "Erro ao registrar fechamento")
    db.refresh(closing)
    logger.info("closing %s created store=%s status=%s by user %s", closing.id, store.id, closing.status, user.id)
    return closing


@router.put("/{closing_id}", response_model=ClosingOut)
def update_closing(
    closing_id: int,
    data: ClosingIn,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    closing = get_scoped_or_404(db, CashClosing, closing_id, user, "Fechamento não encontrado")
    try:
        closing_service.update_closing(
            db,
            engine,
            closing,
            user,
            store_id=data.store_id,
            closing_date=data.date,
            expected_value=data.expected_value,
            counted_value=data.counted_value,
            initial_value=data.initial_value,
            observations=data.observations,
        )
    except closing_service.ClosingPermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))
    except closing_service.StoreNotFound as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    commit_or_400(db, "Erro ao atualizar fechamento")
    db.refresh(closing)
    logger.info("closing %s updated status=%s by user %s", closing.id, closing.status, user.id)
    return closing


@router.post("/{closing_id}/approve", response_model=ClosingOut)
def approve_closing(
    closing_id: int,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(require_manager),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    closing = get_scoped_or_404(db, CashClosing, closing_id, user, "Fechamento não encontrado")
    try:
        closing_service.approve_closing(engine, closing, user)
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    commit_or_400(db, "Erro ao aprovar fechamento")
    db.refresh(closing)
    return closing


@router.delete("/{closing_id}")
def delete_closing(
    closing_id: int,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    if not can_delete(user.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissão insuficiente")
    closing = get_scoped_or_404(db, CashClosing, closing_id, user, "Fechamento não encontrado")
    db.delete(closing)
    commit_or_400(db, "Erro ao remover fechamento")
    logger.info("closing %s deleted by user %s", closing_id, user.id)
    return {"message": "Fechamento removido com sucesso"}
