import datetime as dt
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session, joinedload

from closerflow.core.database import get_db
from closerflow.core.deps import commit_or_400, get_current_user, get_scoped_or_404, require_manager, scoped
from closerflow.core.profile_cache import UserProfile
from closerflow.core.roles import MANAGER_ROLES
from closerflow.models.closing_issue import ClosingIssue
from closerflow.models.store import Store

router = APIRouter()
logger = logging.getLogger(__name__)

ISSUE_STATUSES = ("pending", "resolved")


class IssueIn(BaseModel):
    description: str
    store_id: Optional[int] = None


class IssueUpdate(BaseModel):
    description: Optional[str] = None
    status: Optional[str] = None


class IssueOut(BaseModel):
    id: int
    description: str
    status: str
    user_id: int
    user_name: Optional[str] = None
    store_id: Optional[int] = None
    store_name: Optional[str] = None
    created_at: dt.datetime
    updated_at: dt.datetime


def _out(issue: ClosingIssue) -> IssueOut:
    return IssueOut(
        id=issue.id,
        description=issue.description,
        status=issue.status,
        user_id=issue.user_id,
        user_name=issue.user.name if issue.user else None,
        store_id=issue.store_id,
        store_name=issue.store.name if issue.store else None,
        created_at=issue.created_at,
        updated_at=issue.updated_at,
    )


@router.get("/", response_model=List[IssueOut])
def list_issues(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    user: UserProfile = Depends(get_current_user),
):
    """Managers see every issue of the organization; employees only their own"""
    query = scoped(db.query(ClosingIssue), ClosingIssue, user).options(
        joinedload(ClosingIssue.user), joinedload(ClosingIssue.store)
    )
    if user.role not in {r.value for r in MANAGER_ROLES}:
        query = query.filter(ClosingIssue.user_id == user.id)
    if status_filter:
        query = query.filter(ClosingIssue.status == status_filter)
    return [_out(i) for i in query.order_by(ClosingIssue.created_at.desc()).all()]


@router.post("/", response_model=IssueOut, status_code=status.HTTP_201_CREATED)
def report_issue(data: IssueIn, db: Session = Depends(get_db), user: UserProfile = Depends(get_current_user)):
    description = data.description.strip()
    if not description:
        raise HTTPException(status_code=400, detail="Descreva o problema")
    store_id = data.store_id if data.store_id is not None else user.store_id
    organization_id = user.organization_id
    if store_id is not None:
        store = scoped(db.query(Store), Store, user).filter(Store.id == store_id).first()
        if not store:
            raise HTTPException(status_code=400, detail="Loja não encontrada")
        if organization_id is None:
            organization_id = store.organization_id

    issue = ClosingIssue(
        user_id=user.id,
        store_id=store_id,
        organization_id=organization_id,
        description=description,
        status="pending",
    )
    db.add(issue)
    commit_or_400(db, "Erro ao registrar problema")
    db.refresh(issue)
    logger.info("closing issue %s reported by user %s", issue.id, user.id)
    return _out(issue)


@router.put("/{issue_id}", response_model=IssueOut)
def update_issue(
    issue_id: int,
    data: IssueUpdate,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(require_manager),
):
    issue = get_scoped_or_404(db, ClosingIssue, issue_id, user, "Problema não encontrado")
    if data.status is not None:
        if data.status not in ISSUE_STATUSES:
            raise HTTPException(status_code=400, detail="Status inválido")
        issue.status = data.status
    if data.description is not None:
        if not data.description.strip():
            raise HTTPException(status_code=400, detail="Descreva o problema")
        issue.description = data.description.strip()
    commit_or_400(db, "Erro ao atualizar problema")
    db.refresh(issue)
    logger.info("closing issue %s updated status=%s by user %s", issue.id, issue.status, user.id)
    return _out(issue)


@router.post("/{issue_id}/resolve", response_model=IssueOut)
def resolve_issue(issue_id: int, db: Session = Depends(get_db), user: UserProfile = Depends(require_manager)):
    issue = get_scoped_or_404(db, ClosingIssue, issue_id, user, "Problema não encontrado")
    issue.status = "resolved"
    commit_or_400(db, "Erro ao atualizar problema")
    db.refresh(issue)
    logger.info("closing issue %s resolved by user %s", issue.id, user.id)
    return _out(issue)


@router.delete("/{issue_id}")
def delete_issue(issue_id: int, db: Session = Depends(get_db), user: UserProfile = Depends(require_manager)):
    issue = get_scoped_or_404(db, ClosingIssue, issue_id, user, "Problema não encontrado")
    db.delete(issue)
    commit_or_400(db, "Erro ao excluir problema")
    logger.info("closing issue %s deleted by user %s", issue_id, user.id)
    return {"message": "Problema excluído com sucesso"}
