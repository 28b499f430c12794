"""Authentication routes: login and password change."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.common import ok
from app.api.users import UserResponse
from app.auth.deps import get_current_user
from app.auth.permissions import effective_permissions
from app.auth.security import TokenPayload, generate_token, hash_password, verify_password
from app.db.models import User, UserStatus, utcnow
from app.db.session import get_db
from app.events.activity import log_activity

logger = logging.getLogger(__name__)

router = APIRouter()


class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


@router.post("/login")
async def login(data: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(User).where(User.username == data.username))
    user = result.scalar_one_or_none()

    if not user or not verify_password(data.password, user.password_hash):
        logger.info(f"Failed login for '{data.username}'")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    if user.status != UserStatus.ACTIVE:
        raise HTTPException(status_code=401, detail="Account is inactive")

    user.last_login_at = utcnow()
    # A working sign-in means the account no longer needs its welcome email
    user.welcome_email_pending = False
    log_activity(db, user.id, "login", resource="auth", request=request)
    await db.commit()

    token = generate_token(TokenPayload(user_id=user.id, username=user.username, role=user.role.value))
    logger.info(f"User {user.id} '{user.username}' logged in")

    return ok(
        {
            "token": token,
            "user": UserResponse.model_validate(user),
            "permissions": effective_permissions(user.role, user.permissions),
            "requires_password_change": user.requires_password_change,
        }
    )


@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not verify_password(data.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if data.current_password == data.new_password:
        raise HTTPException(status_code=400, detail="New password must be different from the current password")

    user.password_hash = hash_password(data.new_password)
    user.requires_password_change = False
    user.is_first_login = False
    user.welcome_email_pending = False

    log_activity(db, user.id, "change_password", resource="auth", request=request)
    await db.commit()
    return ok(message="Password changed successfully")
