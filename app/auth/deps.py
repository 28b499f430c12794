"""FastAPI dependencies for bearer authentication and permission gates."""

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.permissions import check_permission
from app.auth.security import get_token_from_header, verify_token
from app.db.models import User, UserStatus
from app.db.session import get_db


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
    token = get_token_from_header(request.headers.get("authorization"))
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")

    payload = verify_token(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await db.get(User, payload.user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if user.status != UserStatus.ACTIVE:
        raise HTTPException(status_code=401, detail="Account is inactive")
    return user


def user_can(user: User, required: str | None) -> bool:
    return check_permission(user.role, user.permissions, required)


def require_permission(required: str):
    """Dependency factory: the current user must hold `required`."""

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if not user_can(user, required):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency
