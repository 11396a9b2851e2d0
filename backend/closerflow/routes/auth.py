from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from closerflow.core.database import get_db
from closerflow.core.deps import get_current_user
from closerflow.core.profile_cache import UserProfile
from closerflow.core.roles import capabilities
from closerflow.core.security import REFRESH_TOKEN, decode_token, issue_token_pair, verify_password
from closerflow.models.user import User


router = APIRouter()


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class Capabilities(BaseModel):
    approve_closings: bool
    delete: bool
    manage_stock: bool
    manage_organizations: bool
    assignable_roles: List[str]


class MeResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    organization_id: Optional[int] = None
    store_id: Optional[int] = None
    capabilities: Capabilities


def _tokens_for(user_id: int) -> TokenResponse:
    access, refresh = issue_token_pair(user_id)
    return TokenResponse(access_token=access, refresh_token=refresh)


@router.post("/login", response_model=TokenResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == data.email.lower()).first()
    if not user or not verify_password(data.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Email ou senha inválidos")
    return _tokens_for(user.id)


@router.post("/refresh", response_model=TokenResponse)
def refresh_token_endpoint(data: RefreshRequest, db: Session = Depends(get_db)):
    user_id = decode_token(data.refresh_token, expected_type=REFRESH_TOKEN)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token inválido")
    if not db.query(User).filter(User.id == user_id).first():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Usuário não encontrado")
    return _tokens_for(user_id)


@router.get("/me", response_model=MeResponse)
def me(user: UserProfile = Depends(get_current_user)):
    """Current profile plus what the role allows, for the client to hide unavailable actions"""
    return MeResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        organization_id=user.organization_id,
        store_id=user.store_id,
        capabilities=Capabilities(**capabilities(user.role)),
    )
