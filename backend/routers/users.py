# routers/users.py — Read-only user directory (accounts live in the identity provider)
from typing import Optional, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, require_role, CurrentUser
from database import get_db_session
from errors import NotFoundError
from models import User, UserRole

router = APIRouter(prefix="/api/v1/users", tags=["Users"])

LIST_LIMIT = 100


# --- Schemas ---

class UserOut(BaseModel):
    id: str
    username: str
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    display_name: str
    avatar: Optional[str] = None
    role: str
    created_at: Optional[str] = None


# --- Helpers ---

def user_to_out(u: User) -> UserOut:
    return UserOut(
        id=u.id,
        username=u.username,
        email=u.email,
        first_name=u.first_name or "",
        last_name=u.last_name or "",
        display_name=u.display_name,
        avatar=u.avatar,
        role=u.role.value if isinstance(u.role, UserRole) else u.role,
        created_at=u.created_at.isoformat() if u.created_at else None,
    )


# --- Endpoints ---

@router.get("/me", response_model=UserOut)
async def get_me(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
):
    u = (await db.execute(select(User).where(User.id == user.id))).scalar_one_or_none()
    if not u:
        raise NotFoundError("User not found")
    return user_to_out(u)


@router.get("", response_model=List[UserOut])
async def list_users(
    user: CurrentUser = Depends(require_role(UserRole.ADMIN, UserRole.MANAGER)),
    db: AsyncSession = Depends(get_db_session),
):
    """Directory for picking team members; managers and admins only"""
    stmt = select(User).order_by(User.username).limit(LIST_LIMIT)
    return [user_to_out(u) for u in (await db.execute(stmt)).scalars().all()]
