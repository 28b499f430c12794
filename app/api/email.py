"""Outbound email routes using the active SMTP configuration."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.common import ok
from app.auth.deps import get_current_user
from app.db.models import User
from app.db.session import get_db
from app.events.activity import log_activity
from app.mail import smtp

logger = logging.getLogger(__name__)

router = APIRouter()


class SendEmailRequest(BaseModel):
    to: str | list[str]
    subject: str = Field(min_length=1)
    html: str | None = None
    text: str | None = None
    from_email: str | None = None
    from_name: str | None = None


@router.get("/send")
async def active_config(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Report the active SMTP configuration, if any."""
    config = await smtp.get_active_smtp_config(db)
    if not config:
        return {"success": False, "message": smtp.NO_ACTIVE_CONFIG, "data": None}

    return ok(
        {
            "id": config.id,
            "name": config.name,
            "host": config.host,
            "port": config.port,
            "secure": config.secure,
            "username": config.username,
            "from_email": config.from_email,
            "from_name": config.from_name,
            "is_active": config.is_active,
        },
        message="Active SMTP configuration found",
    )


@router.post("/send")
async def send(
    data: SendEmailRequest,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not data.to:
        raise HTTPException(status_code=400, detail="Recipient and subject are required")

    config = await smtp.get_active_smtp_config(db)
    if not config:
        raise HTTPException(
            status_code=400,
            detail="No active SMTP configuration found. Please configure SMTP settings first.",
        )

    result = await smtp.send_email(
        db,
        config.id,
        smtp.EmailData(
            to=data.to,
            subject=data.subject,
            html=data.html,
            text=data.text,
            from_email=data.from_email,
            from_name=data.from_name,
        ),
    )

    log_activity(db, user.id, "send_email", resource="smtp_config", resource_id=config.id,
                 request=request, subject=data.subject, success=result.success)
    await db.commit()

    if not result.success:
        return {"success": False, "error": result.error}

    return ok(
        {"to": data.to, "subject": data.subject, "config_used": config.name, "message_id": result.message_id},
        message="Email sent successfully",
    )
