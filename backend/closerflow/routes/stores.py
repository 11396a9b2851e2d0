import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from closerflow.core.database import get_db
from closerflow.core.deps import commit_or_400, get_current_user, get_scoped_or_404, require_admin, scoped
from closerflow.core.profile_cache import UserProfile
from closerflow.core.roles import Role
from closerflow.models.store import Store

router = APIRouter()
logger = logging.getLogger(__name__)


class StoreIn(BaseModel):
    name: str
    code: str
    unit: Optional[str] = None
    organization_id: Optional[int] = None  # super admins only


class StoreOut(BaseModel):
    id: int
    name: str
    code: str
    unit: Optional[str] = None
    organization_id: Optional[int] = None

    class Config:
        from_attributes = True


def _code_taken(db: Session, code: str, organization_id: Optional[int], exclude_id: Optional[int] = None) -> bool:
    query = db.query(Store).filter(Store.code == code, Store.organization_id == organization_id)
    if exclude_id is not None:
        query = query.filter(Store.id != exclude_id)
    return query.first() is not None


def _target_organization(data: StoreIn, user: UserProfile) -> Optional[int]:
    if user.role == Role.super_admin.value and data.organization_id is not None:
        return data.organization_id
    return user.organization_id


@router.get("/", response_model=List[StoreOut])
def list_stores(db: Session = Depends(get_db), user: UserProfile = Depends(get_current_user)):
    return scoped(db.query(Store), Store, user).order_by(Store.name).all()


@router.post("/", response_model=StoreOut, status_code=status.HTTP_201_CREATED)
def create_store(data: StoreIn, db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)):
    name, code = data.name.strip(), data.code.strip().upper()
    if not name or not code:
        raise HTTPException(status_code=400, detail="Nome e código são obrigatórios")
    organization_id = _target_organization(data, user)
    if _code_taken(db, code, organization_id):
        raise HTTPException(status_code=400, detail="Código de loja já existe")

    store = Store(name=name, code=code, unit=(data.unit or "").strip() or None, organization_id=organization_id)
    db.add(store)
    commit_or_400(db, "Erro ao cadastrar loja")
    db.refresh(store)
    logger.info("store %s (%s) created by user %s", store.id, store.code, user.id)
    return store


@router.put("/{store_id}", response_model=StoreOut)
def update_store(
    store_id: int, data: StoreIn, db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)
):
    store = get_scoped_or_404(db, Store, store_id, user, "Loja não encontrada")
    name, code = data.name.strip(), data.code.strip().upper()
    if not name or not code:
        raise HTTPException(status_code=400, detail="Nome e código são obrigatórios")
    if _code_taken(db, code, store.organization_id, exclude_id=store.id):
        raise HTTPException(status_code=400, detail="Código de loja já existe")

    store.name = name
    store.code = code
    store.unit = (data.unit or "").strip() or None
    commit_or_400(db, "Erro ao atualizar loja")
    db.refresh(store)
    logger.info("store %s updated by user %s", store.id, user.id)
    return store


@router.delete("/{store_id}")
def delete_store(store_id: int, db: Session = Depends(get_db), user: UserProfile = Depends(require_admin)):
    store = get_scoped_or_404(db, Store, store_id, user, "Loja não encontrada")
    db.delete(store)
    commit_or_400(db, "Erro ao excluir loja. Verifique se não há fechamentos vinculados.")
    logger.info("store %s deleted by user %s", store_id, user.id)
    return {"message": "Loja excluída com sucesso"}
