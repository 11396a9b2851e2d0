import datetime as dt
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from closerflow.core.database import get_db
from closerflow.core.deps import commit_or_400, require_admin
from closerflow.core.profile_cache import UserProfile
from closerflow.models.account_request import AccountRequest

router = APIRouter()
logger = logging.getLogger(__name__)


class AccountRequestIn(BaseModel):
    name: str
    email: EmailStr


class AccountRequestOut(BaseModel):
    id: int
    name: str
    email: str
    status: str
    reviewed_at: Optional[dt.datetime] = None
    reviewed_by: Optional[int] = None
    created_at: dt.datetime

    class Config:
        from_attributes = True


def _get_or_404(db: Session, request_id: int) -> AccountRequest:
    request = db.query(AccountRequest).filter(AccountRequest.id == request_id).first()
    if not request:
        raise HTTPException(status_code=404, detail="Solicitação não encontrada")
    return request


def _review(db: Session, request_id: int, user: UserProfile, new_status: str) -> AccountRequest:
    request = _get_or_404(db, request_id)
    request.status = new_status
    request.reviewed_at = dt.datetime.now(dt.timezone.utc)
    request.reviewed_by = user.id
    commit_or_400(db, "Erro ao atualizar solicitação")
    db.refresh(request)
    logger.info("account request %s %s by user %s", request.id, new_status, user.id)
    return request


@router.post("/", response_model=AccountRequestOut, status_code=status.HTTP_201_CREATED)
def create_request(data: AccountRequestIn, db: Session = Depends(get_db)):
    """Anonymous access request from the login page"""
    name = data.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Nome é obrigatório")
    email = data.email.lower()
    if db.query(AccountRequest).filter(AccountRequest.email == email).first():
        raise HTTPException(status_code=400, detail="Este email já possui uma solicitação pendente.")
    request = AccountRequest(name=name, email=email, status="pending")
    db.add(request)
    commit_or_400(db, "Este email já possui uma solicitação pendente.")
    db.refresh(request)
    logger.info("account request %s created", request.id)
    return request


@router.get("/", response_model=List[AccountRequestOut])
def list_requests(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(require_admin),
):
    query = db.query(AccountRequest)
    if status_filter:
        query = query.filter(AccountRequest.status == status_filter)
    return query.order_by(AccountRequest.created_at.desc()).all()


@router.get("/pending-count")
def pending_count(db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)):
    return {"count": db.query(AccountRequest).filter(AccountRequest.status == "pending").count()}


@router.post("/{request_id}/approve", response_model=AccountRequestOut)
def approve_request(request_id: int, db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)):
    return _review(db, request_id, user, "approved")


@router.post("/{request_id}/reject", response_model=AccountRequestOut)
def reject_request(request_id: int, db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)):
    return _review(db, request_id, user, "rejected")


@router.delete("/{request_id}")
def delete_request(request_id: int, db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)):
    request = _get_or_404(db, request_id)
    db.delete(request)
    commit_or_400(db, "Erro ao excluir solicitação")
    logger.info("account request %s deleted by user %s", request_id, user.id)
    return {"message": "Solicitação excluída"}
