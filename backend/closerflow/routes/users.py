import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from closerflow.core.database import get_db
from closerflow.core.deps import (
    commit_or_400,
    get_profile_cache,
    get_scoped_or_404,
    require_admin,
    require_manager,
    scoped,
)
from closerflow.core.profile_cache import ProfileCache, UserProfile
from closerflow.core.roles import Role, can_delete, can_edit
from closerflow.core.security import hash_password, password_problem
from closerflow.models.organization import Organization
from closerflow.models.store import Store
from closerflow.models.user import User

router = APIRouter()
logger = logging.getLogger(__name__)


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    name: str
    role: Role = Role.funcionaria
    store_id: Optional[int] = None
    organization_id: Optional[int] = None  # honoured for super admins only


class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    store_id: Optional[int] = None
    clear_store: bool = False
    organization_id: Optional[int] = None


class PasswordReset(BaseModel):
    new_password: str


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role: Role
    organization_id: Optional[int] = None
    store_id: Optional[int] = None
    store_name: Optional[str] = None

    class Config:
        from_attributes = True


def _out(user: User) -> UserOut:
    return UserOut(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        organization_id=user.organization_id,
        store_id=user.store_id,
        store_name=user.store.name if user.store else None,
    )


def _check_store(db: Session, store_id: Optional[int], actor: UserProfile) -> None:
    if store_id is None:
        return
    if not scoped(db.query(Store), Store, actor).filter(Store.id == store_id).first():
        raise HTTPException(status_code=400, detail="Loja não encontrada")


def _check_organization(db: Session, organization_id: Optional[int]) -> None:
    if organization_id is not None and not db.query(Organization).filter(Organization.id == organization_id).first():
        raise HTTPException(status_code=400, detail="Organização não encontrada")


def _email_taken(db: Session, email: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(User).filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    return query.first() is not None


@router.get("/", response_model=List[UserOut])
def list_users(db: Session = Depends(get_db), actor: UserProfile = Depends(require_manager)):
    users = scoped(db.query(User), User, actor).order_by(User.name).all()
    return [_out(u) for u in users]


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(data: UserCreate, db: Session = Depends(get_db), actor: UserProfile = Depends(require_admin)):
    """Create a login for a new employee; the organization is the administrator's own"""
    if not can_edit(actor.role, data.role):
        raise HTTPException(status_code=403, detail="Você não pode atribuir esta função")
    problem = password_problem(data.password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)
    if not data.name.strip():
        raise HTTPException(status_code=400, detail="Email, senha e nome são obrigatórios")

    email = data.email.lower()
    if _email_taken(db, email):
        raise HTTPException(status_code=400, detail="Email já cadastrado")

    organization_id = actor.organization_id
    if actor.role == Role.super_admin.value and data.organization_id is not None:
        _check_organization(db, data.organization_id)
        organization_id = data.organization_id
    _check_store(db, data.store_id, actor)

    user = User(
        name=data.name.strip(),
        email=email,
        hashed_password=hash_password(data.password),
        role=data.role.value,
        organization_id=organization_id,
        store_id=data.store_id,
    )
    db.add(user)
    commit_or_400(db, "Erro ao criar usuário")
    db.refresh(user)
    logger.info("user %s created by %s role=%s", user.id, actor.id, user.role)
    return _out(user)


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    data: UserUpdate,
    db: Session = Depends(get_db),
    actor: UserProfile = Depends(require_manager),
    cache: ProfileCache = Depends(get_profile_cache),
):
    target = get_scoped_or_404(db, User, user_id, actor, "Usuário não encontrado")
    if not can_edit(actor.role, target.role):
        raise HTTPException(status_code=403, detail="Você não pode editar este usuário")

    if data.role is not None and data.role.value != target.role:
        if target.id == actor.id:
            raise HTTPException(status_code=400, detail="Você não pode alterar sua própria função")
        if not can_edit(actor.role, data.role):
            raise HTTPException(status_code=403, detail="Você não pode atribuir esta função")
        target.role = data.role.value

    if data.name is not None:
        if not data.name.strip():
            raise HTTPException(status_code=400, detail="Nome é obrigatório")
        target.name = data.name.strip()

    if data.email is not None:
        email = data.email.lower()
        if _email_taken(db, email, exclude_id=target.id):
            raise HTTPException(status_code=400, detail="Email já cadastrado")
        target.email = email

    if data.clear_store:
        target.store_id = None
    elif data.store_id is not None:
        _check_store(db, data.store_id, actor)
        target.store_id = data.store_id

    if data.organization_id is not None:
        if actor.role != Role.super_admin.value:
            raise HTTPException(status_code=403, detail="Apenas super administradores alteram a organização")
        _check_organization(db, data.organization_id)
        target.organization_id = data.organization_id

    commit_or_400(db, "Erro ao atualizar usuário")
    cache.invalidate(target.id)
    db.refresh(target)
    logger.info("user %s updated by %s", target.id, actor.id)
    return _out(target)


@router.post("/{user_id}/reset-password")
def reset_password(
    user_id: int,
    data: PasswordReset,
    db: Session = Depends(get_db),
    actor: UserProfile = Depends(require_admin),
):
    target = get_scoped_or_404(db, User, user_id, actor, "Usuário não encontrado")
    if not can_edit(actor.role, target.role):
        raise HTTPException(status_code=403, detail="Você não pode editar este usuário")
    problem = password_problem(data.new_password)
    if problem:
        raise HTTPException(status_code=400, detail=problem)
    target.hashed_password = hash_password(data.new_password)
    commit_or_400(db, "Erro ao redefinir senha")
    logger.info("password of user %s reset by %s", target.id, actor.id)
    return {"success": True, "message": "Senha atualizada com sucesso"}


@router.delete("/{user_id}")
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    actor: UserProfile = Depends(require_admin),
    cache: ProfileCache = Depends(get_profile_cache),
):
    target = get_scoped_or_404(db, User, user_id, actor, "Usuário não encontrado")
    if target.id == actor.id:
        raise HTTPException(status_code=400, detail="Você não pode excluir a si mesmo")
    if not can_delete(actor.role) or not can_edit(actor.role, target.role):
        raise HTTPException(status_code=403, detail="Você não pode excluir este usuário")
    db.delete(target)
    commit_or_400(db, "Erro ao excluir usuário")
    cache.invalidate(user_id)
    logger.info("user %s deleted by %s", user_id, actor.id)
    return {"message": "Usuário excluído com sucesso"}
