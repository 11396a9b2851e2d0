from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Tuple

import jwt
from passlib.context import CryptContext

from closerflow.core.config import settings


password_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12,
)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


def hash_password(password: str) -> str:
    return password_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    return password_context.verify(password, hashed_password)


def password_problem(password: Optional[str]) -> Optional[str]:
    """Return a user-facing message when the password is not acceptable."""
    if not password:
        return "Senha é obrigatória"
    if len(password) < settings.min_password_length:
        return f"A senha deve ter pelo menos {settings.min_password_length} caracteres"
    return None


def create_token(user_id: int, expires_minutes: int, token_type: str) -> str:
    issued_at = datetime.now(timezone.utc)
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "type": token_type,
        "exp": issued_at + timedelta(minutes=expires_minutes),
        "iat": issued_at,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def issue_token_pair(user_id: int) -> Tuple[str, str]:
    access = create_token(user_id, settings.access_token_expire_minutes, ACCESS_TOKEN)
    refresh = create_token(user_id, settings.refresh_token_expire_minutes, REFRESH_TOKEN)
    return access, refresh


def decode_token(token: str, expected_type: str = ACCESS_TOKEN) -> Optional[int]:
    """User id carried by a valid token of ``expected_type``, else None."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        return None
    if payload.get("type") != expected_type:
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
