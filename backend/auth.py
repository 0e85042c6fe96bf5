# auth.py — Caller identity for TaskHub
# Sessions, passwords and login live in the identity provider. This module only:
# - Verifies the bearer JWT presented with each request
# - Resolves its subject to a User and role (admin, manager, member)
# - Mints access tokens for tests and the seed script

import os
import uuid
import secrets
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from jose import jwt, JWTError, ExpiredSignatureError
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db_session
from errors import NotAuthorizedError
from models import User, UserRole

logger = logging.getLogger("taskhub.auth")

# ============================================================
# CONFIGURATION
# ============================================================

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "")
if not SECRET_KEY or SECRET_KEY == "change-this-to-a-secure-random-key-in-production":
    SECRET_KEY = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY not set or insecure. Generated ephemeral key. "
        "Set JWT_SECRET_KEY in production!"
    )

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

security = HTTPBearer(auto_error=False)


class CurrentUser(BaseModel):
    id: str
    username: str
    display_name: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


def _unauthenticated(reason: str) -> NotAuthorizedError:
    return NotAuthorizedError(reason, status_code=401)


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Bearer token handling"""

    @staticmethod
    def _create_token(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + expires_delta,
            "iat": now,
            "type": token_type,
            "jti": str(uuid.uuid4()),
        })
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
        delta = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
        return AuthService._create_token(data, "access", delta)

    @staticmethod
    def token_for(user: User, expires_delta: Optional[timedelta] = None) -> str:
        role = user.role.value if isinstance(user.role, UserRole) else user.role
        return AuthService.create_access_token(
            {"sub": user.id, "username": user.username, "role": role},
            expires_delta,
        )

    @staticmethod
    def verify_token(token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise _unauthenticated("Token expired")
        except JWTError:
            raise _unauthenticated("Invalid token")


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db_session),
) -> CurrentUser:
    if credentials is None:
        raise _unauthenticated("You must be logged in")

    payload = AuthService.verify_token(credentials.credentials)

    if payload.get("type") != "access":
        raise _unauthenticated("Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise _unauthenticated("Invalid token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise _unauthenticated("User not found")

    return CurrentUser(
        id=user.id,
        username=user.username,
        display_name=user.display_name,
        role=user.role.value if isinstance(user.role, UserRole) else user.role,
    )


def require_role(*roles: UserRole):
    """Dependency factory: require user to have one of the specified roles"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if UserRole(user.role) not in roles:
            raise NotAuthorizedError("Insufficient role privileges")
        return user
    return _check
