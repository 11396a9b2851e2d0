import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from closerflow.core.database import get_db
from closerflow.core.deps import commit_or_400, require_super_admin
from closerflow.core.profile_cache import UserProfile
from closerflow.models.organization import Organization

router = APIRouter()
logger = logging.getLogger(__name__)


class OrganizationIn(BaseModel):
    name: str
    code: str


class OrganizationOut(OrganizationIn):
    id: int

    class Config:
        from_attributes = True


def _get_or_404(db: Session, organization_id: int) -> Organization:
    organization = db.query(Organization).filter(Organization.id == organization_id).first()
    if not organization:
        raise HTTPException(status_code=404, detail="Organização não encontrada")
    return organization


def _clean(data: OrganizationIn):
    name, code = data.name.strip(), data.code.strip().upper()
    if not name or not code:
        raise HTTPException(status_code=400, detail="Nome e código são obrigatórios")
    return name, code


@router.get("/", response_model=List[OrganizationOut])
def list_organizations(db: Session = Depends(get_db), user: UserProfile = Depends(require_super_admin)):
    return db.query(Organization).order_by(Organization.name).all()


@router.post("/", response_model=OrganizationOut, status_code=status.HTTP_201_CREATED)
def create_organization(
    data: OrganizationIn, db: Session = Depends(get_db), user: UserProfile = Depends(require_super_admin)
):
    name, code = _clean(data)
    if db.query(Organization).filter(Organization.code == code).first():
        raise HTTPException(status_code=400, detail="Código de organização já existe")
    organization = Organization(name=name, code=code)
    db.add(organization)
    commit_or_400(db, "Erro ao criar organização")
    db.refresh(organization)
    logger.info("organization %s (%s) created by user %s", organization.id, code, user.id)
    return organization


@router.put("/{organization_id}", response_model=OrganizationOut)
def update_organization(
    organization_id: int,
    data: OrganizationIn,
    db: Session = Depends(get_db),
    user: UserProfile = Depends(require_super_admin),
):
    organization = _get_or_404(db, organization_id)
    name, code = _clean(data)
    clash = db.query(Organization).filter(Organization.code == code, Organization.id != organization.id).first()
    if clash:
        raise HTTPException(status_code=400, detail="Código de organização já existe")
    organization.name = name
    organization.code = code
    commit_or_400(db, "Erro ao atualizar organização")
    db.refresh(organization)
    logger.info("organization %s updated by user %s", organization.id, user.id)
    return organization


@router.delete("/{organization_id}")
def delete_organization(
    organization_id: int, db: Session = Depends(get_db), user: UserProfile = Depends(require_super_admin)
):
    organization = _get_or_404(db, organization_id)
    if user.organization_id == organization.id:
        raise HTTPException(status_code=400, detail="Você não pode excluir a sua própria organização")
    db.delete(organization)
    commit_or_400(db, "Erro ao excluir organização")
    logger.info("organization %s deleted by user %s", organization_id, user.id)
    return {"message": "Organização excluída com sucesso"}
