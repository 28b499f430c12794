"""User management API routes: accounts, permissions, passwords, audit trail."""

import logging
import math
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.common import ok
from app.auth.deps import get_current_user, require_permission, user_can
from app.auth.permissions import (
    CREATE_USERS,
    DELETE_USERS,
    EDIT_USERS,
    RESET_USER_PASSWORD,
    VIEW_USERS,
    effective_permissions,
    validate_permission_keys,
)
from app.auth.security import hash_password
from app.db.models import User, UserRole, UserStatus
from app.db.session import get_db
from app.events.activity import list_activity, log_activity
from app.mail.email_service import deliver_welcome, resend_welcome_email, send_password_reset_email
from app.mail.passwords import generate_temporary_password

logger = logging.getLogger(__name__)

router = APIRouter()


class UserResponse(BaseModel):
    id: int
    username: str
    first_name: str | None
    last_name: str | None
    email: str | None
    role: UserRole
    status: UserStatus
    permissions: list[str] | None
    avatar_url: str | None
    is_first_login: bool
    requires_password_change: bool
    welcome_email_pending: bool
    created_by: int | None
    last_login_at: datetime | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserListItem(UserResponse):
    created_by_username: str | None = None


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    role: UserRole = UserRole.CONTENT_MANAGER
    status: UserStatus = UserStatus.ACTIVE
    permissions: list[str] | None = None


class UserUpdate(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=100)
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = Field(default=None, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    role: UserRole | None = None
    status: UserStatus | None = None
    avatar_url: str | None = None


class PermissionsUpdate(BaseModel):
    # None restores the role defaults
    permissions: list[str] | None


class ResetPasswordRequest(BaseModel):
    new_password: str | None = Field(default=None, min_length=6)


class ActivityResponse(BaseModel):
    id: int
    action: str
    resource: str | None
    resource_id: int | None
    details: dict | None
    ip_address: str | None
    user_agent: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


async def _get_user_or_404(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


async def _taken(db: AsyncSession, column, value: str, exclude_id: int | None = None) -> bool:
    query = select(User.id).where(column == value)
    if exclude_id is not None:
        query = query.where(User.id != exclude_id)
    return (await db.execute(query)).first() is not None


async def _ensure_unique(db: AsyncSession, username: str | None, email: str | None, exclude_id: int | None = None):
    if username and await _taken(db, User.username, username, exclude_id):
        raise HTTPException(
            status_code=400,
            detail=f'Username "{username}" is already taken. Please choose a different username.',
        )
    if email and await _taken(db, User.email, email, exclude_id):
        raise HTTPException(
            status_code=400,
            detail=f'Email address "{email}" is already registered. Please use a different email address.',
        )


def _check_permission_keys(permissions: list[str] | None) -> None:
    if permissions is None:
        return
    unknown = validate_permission_keys(permissions)
    if unknown:
        raise HTTPException(status_code=400, detail=f"Invalid permissions: {', '.join(unknown)}")


def _guard_admin_target(actor: User, target: User, action: str) -> None:
    if target.role == UserRole.ADMIN and actor.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail=f"Only admins can {action} admin accounts")


@router.get("")
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    search: str = "",
    role: UserRole | None = None,
    status: UserStatus | None = None,
    user: User = Depends(require_permission(VIEW_USERS)),
    db: AsyncSession = Depends(get_db),
):
    """List users newest first with search, role/status filters and pagination."""
    filters = []
    if search:
        pattern = f"%{search}%"
        filters.append(
            or_(
                User.username.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
            )
        )
    if role:
        filters.append(User.role == role)
    if status:
        filters.append(User.status == status)

    result = await db.execute(
        select(User)
        .where(*filters)
        .order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    users = list(result.scalars().all())
    total = await db.scalar(select(func.count()).select_from(User).where(*filters))

    creator_ids = {u.created_by for u in users if u.created_by}
    creators = {}
    if creator_ids:
        rows = await db.execute(select(User.id, User.username).where(User.id.in_(creator_ids)))
        creators = dict(rows.all())

    items = []
    for u in users:
        item = UserListItem.model_validate(u)
        item.created_by_username = creators.get(u.created_by)
        items.append(item)

    return ok(
        {
            "users": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }
    )


@router.post("", status_code=201)
async def create_user(
    data: UserCreate,
    request: Request,
    admin: User = Depends(require_permission(CREATE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    """Create an account with a temporary password and email it.

    The account is created even when the welcome email cannot be sent; it is
    then flagged `welcome_email_pending` for a later retry.
    """
    _check_permission_keys(data.permissions)
    await _ensure_unique(db, data.username, data.email)

    temporary_password = generate_temporary_password()
    user = User(
        username=data.username,
        first_name=data.first_name,
        last_name=data.last_name,
        email=data.email,
        password_hash=hash_password(temporary_password),
        role=data.role,
        status=data.status,
        permissions=data.permissions,
        is_first_login=True,
        requires_password_change=True,
        created_by=admin.id,
    )
    db.add(user)
    await db.flush()

    email_sent = await deliver_welcome(db, user, temporary_password, admin_name=admin.username)

    log_activity(
        db,
        admin.id,
        "create_user",
        resource="user",
        resource_id=user.id,
        request=request,
        username=user.username,
        welcome_email_sent=email_sent,
    )
    await db.commit()
    logger.info(f"User {user.id} '{user.username}' created by {admin.username} (email_sent={email_sent})")

    return ok(
        {
            "user": UserResponse.model_validate(user),
            "email_sent": email_sent,
            "temporary_password": temporary_password,
        },
        message="User created successfully",
    )


@router.get("/validate")
async def validate_availability(
    username: str | None = None,
    email: str | None = None,
    exclude_id: int | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Check whether a username or email is free, for live form validation."""
    if not (user_can(user, CREATE_USERS) or user_can(user, EDIT_USERS)):
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    username = username.strip() if username else None
    email = email.strip() if email else None
    if not username and not email:
        raise HTTPException(status_code=400, detail="Please provide either username or email parameter")

    if username and await _taken(db, User.username, username, exclude_id):
        return {
            "available": False,
            "error": f'Username "{username}" is already taken. Please choose a different username.',
        }
    if email and await _taken(db, User.email, email, exclude_id):
        return {
            "available": False,
            "error": f'Email address "{email}" is already taken. Please choose a different email.',
        }
    return {"available": True}


@router.get("/me/permissions")
async def my_permissions(user: User = Depends(get_current_user)):
    """Effective permission list of the signed-in user."""
    return ok(
        {
            "permissions": effective_permissions(user.role, user.permissions),
            "role": user.role.value,
            "has_override": user.permissions is not None,
        }
    )


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    user: User = Depends(require_permission(VIEW_USERS)),
    db: AsyncSession = Depends(get_db),
):
    return ok(UserResponse.model_validate(await _get_user_or_404(db, user_id)))


@router.put("/{user_id}")
async def update_user(
    user_id: int,
    data: UserUpdate,
    request: Request,
    actor: User = Depends(require_permission(EDIT_USERS)),
    db: AsyncSession = Depends(get_db),
):
    target = await _get_user_or_404(db, user_id)
    _guard_admin_target(actor, target, "modify")
    if data.role == UserRole.ADMIN and actor.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Only admins can grant the admin role")
    if target.id == actor.id and data.status == UserStatus.INACTIVE:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

    await _ensure_unique(db, data.username, data.email, exclude_id=user_id)

    changes = data.model_dump(exclude_none=True)
    for attr, value in changes.items():
        setattr(target, attr, value)

    log_activity(
        db, actor.id, "update_user", resource="user", resource_id=user_id, request=request,
        fields=sorted(changes),
    )
    await db.commit()
    return ok(UserResponse.model_validate(target), message="User updated successfully")


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    request: Request,
    actor: User = Depends(require_permission(DELETE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    if user_id == actor.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")

    target = await _get_user_or_404(db, user_id)
    _guard_admin_target(actor, target, "delete")
    username = target.username

    await db.delete(target)
    log_activity(
        db, actor.id, "delete_user", resource="user", resource_id=user_id, request=request,
        username=username,
    )
    await db.commit()
    logger.info(f"User {user_id} '{username}' deleted by {actor.username}")
    return ok({"id": user_id, "username": username}, message="User deleted successfully")


@router.get("/{user_id}/permissions")
async def get_user_permissions(
    user_id: int,
    user: User = Depends(require_permission(VIEW_USERS)),
    db: AsyncSession = Depends(get_db),
):
    target = await _get_user_or_404(db, user_id)
    return ok(
        {
            "user_id": target.id,
            "role": target.role.value,
            "permissions": target.permissions,
            "effective_permissions": effective_permissions(target.role, target.permissions),
        }
    )


@router.put("/{user_id}/permissions")
async def update_user_permissions(
    user_id: int,
    data: PermissionsUpdate,
    request: Request,
    actor: User = Depends(require_permission(EDIT_USERS)),
    db: AsyncSession = Depends(get_db),
):
    """Replace a user's explicit permission list (null restores role defaults)."""
    _check_permission_keys(data.permissions)
    target = await _get_user_or_404(db, user_id)
    _guard_admin_target(actor, target, "modify")

    target.permissions = list(data.permissions) if data.permissions is not None else None
    log_activity(
        db, actor.id, "update_permissions", resource="user", resource_id=user_id, request=request,
        permissions=target.permissions,
    )
    await db.commit()
    return ok(
        {
            "user_id": target.id,
            "permissions": target.permissions,
            "effective_permissions": effective_permissions(target.role, target.permissions),
        },
        message="Permissions updated successfully",
    )


@router.post("/{user_id}/reset-password")
async def reset_password(
    user_id: int,
    request: Request,
    data: ResetPasswordRequest | None = None,
    actor: User = Depends(require_permission(RESET_USER_PASSWORD)),
    db: AsyncSession = Depends(get_db),
):
    """Set a new password (a generated temporary one unless supplied) and email it."""
    target = await _get_user_or_404(db, user_id)
    _guard_admin_target(actor, target, "reset passwords of")

    generated = data is None or data.new_password is None
    new_password = generate_temporary_password() if generated else data.new_password

    target.password_hash = hash_password(new_password)
    target.requires_password_change = True
    # The reset supersedes any pending welcome email and its password
    target.welcome_email_pending = False
    await db.flush()

    email_sent = False
    if target.email:
        email_sent = await send_password_reset_email(
            db, target.email, target.username, temporary_password=new_password if generated else None
        )

    log_activity(
        db, actor.id, "reset_password", resource="user", resource_id=user_id, request=request,
        reset_user=target.username, email_sent=email_sent,
    )
    await db.commit()

    payload = {"id": target.id, "username": target.username, "email_sent": email_sent}
    if generated:
        payload["temporary_password"] = new_password
    return ok(payload, message="Password reset successfully")


@router.post("/{user_id}/resend-welcome")
async def resend_welcome(
    user_id: int,
    request: Request,
    admin: User = Depends(require_permission(CREATE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    """Issue a fresh temporary password and retry a pending welcome email."""
    target = await _get_user_or_404(db, user_id)
    _guard_admin_target(admin, target, "resend welcome email to")
    if not target.welcome_email_pending:
        raise HTTPException(status_code=400, detail="Welcome email is not pending for this user")
    if not target.email:
        raise HTTPException(status_code=400, detail="User has no email address")

    sent = await resend_welcome_email(db, target, admin_name=admin.username)
    log_activity(
        db, admin.id, "resend_welcome", resource="user", resource_id=user_id, request=request,
        email_sent=sent,
    )
    await db.commit()

    return {
        "success": sent,
        "data": {
            "id": target.id,
            "email_sent": sent,
            "welcome_email_pending": target.welcome_email_pending,
        },
        "message": "Welcome email sent" if sent else "Welcome email could not be sent; it stays pending",
    }


@router.get("/{user_id}/activity")
async def user_activity(
    user_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Audit trail of a user's actions. Users may always read their own."""
    if user.id != user_id and not user_can(user, VIEW_USERS):
        raise HTTPException(status_code=403, detail="Insufficient permissions")

    await _get_user_or_404(db, user_id)
    total, entries = await list_activity(db, user_id, limit=limit, offset=offset)
    return ok(
        {
            "total": total,
            "activities": [ActivityResponse.model_validate(e) for e in entries],
        }
    )
