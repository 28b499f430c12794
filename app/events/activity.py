"""Audit trail of administrative actions.

Every write performed through the admin API records who did what to which
resource. Entries are added to the caller's session and committed together
with the change they describe.
"""

import logging
from typing import Any

from fastapi import Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import UserActivity

logger = logging.getLogger(__name__)


def log_activity(
    session: AsyncSession,
    user_id: int,
    action: str,
    resource: str | None = None,
    resource_id: int | None = None,
    request: Request | None = None,
    **details: Any,
) -> UserActivity:
    """Stage an activity entry on the session (caller commits)."""
    ip_address = None
    user_agent = None
    if request is not None:
        ip_address = request.headers.get("x-forwarded-for") or (
            request.client.host if request.client else "unknown"
        )
        user_agent = request.headers.get("user-agent")

    activity = UserActivity(
        user_id=user_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=details or None,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(activity)
    logger.debug(f"Activity {action} on {resource}#{resource_id} by user {user_id}")
    return activity


async def list_activity(
    session: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[UserActivity]]:
    """Activity entries for a user, newest first, with the total count."""
    base = select(UserActivity).where(UserActivity.user_id == user_id)
    result = await session.execute(
        base.order_by(UserActivity.created_at.desc(), UserActivity.id.desc())
        .offset(offset)
        .limit(limit)
    )
    entries = list(result.scalars().all())

    count_result = await session.execute(
        select(func.count()).select_from(UserActivity).where(UserActivity.user_id == user_id)
    )
    total = count_result.scalar_one()
    return total, entries
