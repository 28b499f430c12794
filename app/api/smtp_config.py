"""SMTP configuration API routes.

Stored passwords are never returned; responses only say whether one is set.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.common import ok
from app.auth.deps import require_permission
from app.auth.permissions import (
    CREATE_SMTP_CONFIG,
    DELETE_SMTP_CONFIG,
    EDIT_SMTP_CONFIG,
    TEST_SMTP_CONFIG,
    VIEW_SMTP_CONFIG,
)
from app.db.models import SmtpConfig, User
from app.db.session import get_db
from app.events.activity import log_activity
from app.mail import smtp
from app.mail.crypto import CredentialError
from app.mail.email_builder import build_smtp_test_email

router = APIRouter()

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class SmtpConfigCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    host: str = Field(min_length=1)
    port: int = Field(default=587, ge=1, le=65535)
    secure: bool = False
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)
    from_email: str = Field(pattern=EMAIL_PATTERN)
    from_name: str | None = None
    is_active: bool = False


class SmtpConfigUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    host: str | None = Field(default=None, min_length=1)
    port: int | None = Field(default=None, ge=1, le=65535)
    secure: bool | None = None
    username: str | None = Field(default=None, min_length=1)
    # Omitted or empty keeps the stored password
    password: str | None = None
    from_email: str | None = Field(default=None, pattern=EMAIL_PATTERN)
    from_name: str | None = None
    is_active: bool | None = None


class SmtpTestRequest(BaseModel):
    config_id: int
    test_email: str | None = Field(default=None, pattern=EMAIL_PATTERN)


class SmtpConfigResponse(BaseModel):
    id: int
    name: str
    host: str
    port: int
    secure: bool
    username: str
    from_email: str
    from_name: str | None
    is_active: bool
    created_by: int | None
    created_at: datetime
    updated_at: datetime
    has_password: bool = True

    model_config = {"from_attributes": True}


def _response(config: SmtpConfig) -> SmtpConfigResponse:
    response = SmtpConfigResponse.model_validate(config)
    response.has_password = bool(config.password)
    return response


@router.get("")
async def list_configs(
    user: User = Depends(require_permission(VIEW_SMTP_CONFIG)),
    db: AsyncSession = Depends(get_db),
):
    return ok([_response(c) for c in await smtp.list_smtp_configs(db)])


@router.post("", status_code=201)
async def create_config(
    data: SmtpConfigCreate,
    request: Request,
    user: User = Depends(require_permission(CREATE_SMTP_CONFIG)),
    db: AsyncSession = Depends(get_db),
):
    try:
        config = await smtp.create_smtp_config(db, **data.model_dump(), created_by=user.id)
    except smtp.SmtpConfigError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except CredentialError as e:
        raise HTTPException(status_code=500, detail=str(e))

    log_activity(db, user.id, "create_smtp_config", resource="smtp_config", resource_id=config.id,
                 request=request, name=config.name, is_active=config.is_active)
    await db.commit()
    return ok(_response(config), message="SMTP configuration created successfully")


@router.post("/test")
async def test_config(
    data: SmtpTestRequest,
    request: Request,
    user: User = Depends(require_permission(TEST_SMTP_CONFIG)),
    db: AsyncSession = Depends(get_db),
):
    """Connect and authenticate; optionally send a test message via the active config."""
    result = await smtp.test_smtp_config(db, data.config_id)
    log_activity(db, user.id, "test_smtp_config", resource="smtp_config", resource_id=data.config_id,
                 request=request, success=result.success)
    await db.commit()

    if not result.success:
        return {"success": False, "error": result.error}

    if not data.test_email:
        return ok({"config_id": data.config_id}, message="SMTP configuration test passed")

    config = await smtp.get_smtp_config(db, data.config_id)
    template = build_smtp_test_email(config.name, config.host, config.port)
    sent = await smtp.send_email_with_active_config(
        db,
        smtp.EmailData(to=data.test_email, subject=template.subject, html=template.html, text=template.text),
    )
    if not sent.success:
        return {
            "success": False,
            "error": f"Configuration test passed but email sending failed: {sent.error}",
        }
    return ok(
        {"config_id": data.config_id, "test_email": data.test_email},
        message="SMTP configuration test passed and test email sent successfully",
    )


@router.get("/{config_id}")
async def get_config(
    config_id: int,
    user: User = Depends(require_permission(VIEW_SMTP_CONFIG)),
    db: AsyncSession = Depends(get_db),
):
    config = await smtp.get_smtp_config(db, config_id)
    if not config:
        raise HTTPException(status_code=404, detail="SMTP configuration not found")
    return ok(_response(config))


@router.put("/{config_id}")
async def update_config(
    config_id: int,
    data: SmtpConfigUpdate,
    request: Request,
    user: User = Depends(require_permission(EDIT_SMTP_CONFIG)),
    db: AsyncSession = Depends(get_db),
):
    try:
        config = await smtp.update_smtp_config(db, config_id, **data.model_dump())
    except smtp.SmtpConfigError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except CredentialError as e:
        raise HTTPException(status_code=500, detail=str(e))

    log_activity(db, user.id, "update_smtp_config", resource="smtp_config", resource_id=config_id,
                 request=request, fields=sorted(data.model_dump(exclude_none=True, exclude={"password"})))
    await db.commit()
    return ok(_response(config), message="SMTP configuration updated successfully")


@router.delete("/{config_id}")
async def delete_config(
    config_id: int,
    request: Request,
    user: User = Depends(require_permission(DELETE_SMTP_CONFIG)),
    db: AsyncSession = Depends(get_db),
):
    try:
        await smtp.delete_smtp_config(db, config_id)
    except smtp.SmtpConfigError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    log_activity(db, user.id, "delete_smtp_config", resource="smtp_config", resource_id=config_id,
                 request=request)
    await db.commit()
    return ok({"id": config_id}, message="SMTP configuration deleted successfully")
