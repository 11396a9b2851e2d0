import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from closerflow.core.config import settings
from closerflow.core.database import get_db
from closerflow.core.profile_cache import ProfileCache, UserProfile
from closerflow.core.reconciliation import ReconciliationEngine
from closerflow.core.roles import ADMIN_ROLES, MANAGER_ROLES, Role
from closerflow.core.security import decode_token
from closerflow.models.user import User


def get_profile_cache(request: Request) -> ProfileCache:
    return request.app.state.profile_cache


def get_reconciliation_engine() -> ReconciliationEngine:
    return ReconciliationEngine(settings.tolerance_limit)


def get_current_user(
    db: Session = Depends(get_db),
    cache: ProfileCache = Depends(get_profile_cache),
    authorization: Optional[str] = Header(None),
) -> UserProfile:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário não autenticado")
    user_id = decode_token(authorization.split(" ", 1)[1])
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido")

    def load(uid: int) -> Optional[UserProfile]:
        user = db.query(User).filter(User.id == uid).first()
        return UserProfile.from_user(user) if user else None

    profile = cache.get_or_load(user_id, load)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário não encontrado")
    return profile


def require_manager(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if user.role not in {r.value for r in MANAGER_ROLES}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissão insuficiente")
    return user


def require_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if user.role not in {r.value for r in ADMIN_ROLES}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Apenas administradores")
    return user


def require_super_admin(user: UserProfile = Depends(get_current_user)) -> UserProfile:
    if user.role != Role.super_admin.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Apenas super administradores")
    return user


def scoped(query, model, user: UserProfile):
    """Restrict a query to the caller's organization; super admins see every organization."""
    if user.role == Role.super_admin.value:
        return query
    if user.organization_id is None:
        return query.filter(model.organization_id.is_(None))
    return query.filter(model.organization_id == user.organization_id)


def get_scoped_or_404(db: Session, model, object_id: int, user: UserProfile, detail: str):
    obj = scoped(db.query(model), model, user).filter(model.id == object_id).first()
    if not obj:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=detail)
    return obj


def commit_or_400(db: Session, detail: str) -> None:
    """Commit, or roll back and surface the store failure as a rejected action."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logging.getLogger(__name__).warning("%s: %s", detail, exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
