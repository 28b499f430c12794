"""Profile routes for the signed-in user."""

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.common import ok
from app.api.users import UserResponse
from app.auth.deps import require_permission
from app.auth.permissions import EDIT_PROFILE_SETTINGS, VIEW_PROFILE_SETTINGS
from app.db.models import User
from app.db.session import get_db
from app.events.activity import log_activity

router = APIRouter()


class ProfileUpdate(BaseModel):
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    avatar_url: str | None = Field(default=None, max_length=500)


@router.get("")
async def get_profile(user: User = Depends(require_permission(VIEW_PROFILE_SETTINGS))):
    return ok(UserResponse.model_validate(user))


@router.put("")
async def update_profile(
    data: ProfileUpdate,
    request: Request,
    user: User = Depends(require_permission(EDIT_PROFILE_SETTINGS)),
    db: AsyncSession = Depends(get_db),
):
    if data.email and data.email != user.email:
        taken = await db.execute(select(User.id).where(User.email == data.email, User.id != user.id))
        if taken.first() is not None:
            raise HTTPException(status_code=400, detail="Email address is already in use")

    changes = data.model_dump(exclude_none=True)
    for attr, value in changes.items():
        setattr(user, attr, value)

    log_activity(db, user.id, "update_profile", resource="user", resource_id=user.id, request=request,
                 fields=sorted(changes))
    await db.commit()
    return ok(UserResponse.model_validate(user), message="Profile updated successfully")
