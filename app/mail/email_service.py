"""Account email flows: welcome, resend and password reset.

All mail goes through the active SMTP configuration. A failed send never
undoes the account change that triggered it; instead the user is flagged
`welcome_email_pending` and picked up again by `resend_welcome_email`, either
from the admin API or the periodic retry task.

We never keep a plaintext password, so every resend issues a fresh temporary
password and stores its hash before sending.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.security import hash_password
from app.db.models import User, UserStatus
from app.mail.email_builder import build_password_reset_email, build_welcome_email
from app.mail.passwords import generate_temporary_password
from app.mail.smtp import EmailData, send_email_with_active_config

logger = logging.getLogger(__name__)


@dataclass
class RetrySummary:
    attempted: int = 0
    sent: int = 0
    failed: int = 0


async def send_welcome_email(
    session: AsyncSession,
    email: str,
    username: str,
    temporary_password: str,
    login_url: str | None = None,
    admin_name: str | None = None,
) -> bool:
    """Send the welcome email. Returns False (and logs) on any failure."""
    template = build_welcome_email(username, temporary_password, login_url, admin_name)
    result = await send_email_with_active_config(
        session,
        EmailData(to=email, subject=template.subject, html=template.html, text=template.text),
    )
    if not result.success:
        logger.error(f"Error sending welcome email to {email}: {result.error}")
        return False

    logger.info(f"Welcome email sent successfully to {email}")
    return True


async def send_password_reset_email(
    session: AsyncSession,
    email: str,
    username: str,
    reset_url: str | None = None,
    temporary_password: str | None = None,
) -> bool:
    template = build_password_reset_email(username, reset_url, temporary_password)
    result = await send_email_with_active_config(
        session,
        EmailData(to=email, subject=template.subject, html=template.html, text=template.text),
    )
    if not result.success:
        logger.error(f"Error sending password reset email to {email}: {result.error}")
        return False

    logger.info(f"Password reset email sent successfully to {email}")
    return True


async def deliver_welcome(
    session: AsyncSession,
    user: User,
    temporary_password: str,
    login_url: str | None = None,
    admin_name: str | None = None,
) -> bool:
    """Send the welcome email for `user` and record the outcome on the row.

    The user is flagged pending when the send fails (or they have no email
    yet) and cleared when it succeeds. Flushes; the caller commits.
    """
    if not user.email:
        user.welcome_email_pending = True
        await session.flush()
        logger.warning(f"User {user.id} has no email address; welcome email left pending")
        return False

    sent = await send_welcome_email(
        session, user.email, user.username, temporary_password, login_url, admin_name
    )
    user.welcome_email_pending = not sent
    await session.flush()
    return sent


async def resend_welcome_email(
    session: AsyncSession,
    user: User,
    login_url: str | None = None,
    admin_name: str | None = None,
) -> bool:
    """Issue a fresh temporary password and send the welcome email again."""
    temporary_password = generate_temporary_password()
    user.password_hash = hash_password(temporary_password)
    user.requires_password_change = True
    user.is_first_login = True
    await session.flush()

    sent = await deliver_welcome(session, user, temporary_password, login_url, admin_name)
    logger.info(f"Resent welcome email for user {user.id}: sent={sent}")
    return sent


async def retry_pending_welcome_emails(session: AsyncSession, limit: int = 50) -> RetrySummary:
    """Retry welcome mail for active users still flagged pending. Commits per user.

    Users who have signed in or set their own password are skipped even if
    the flag is still set.
    """
    result = await session.execute(
        select(User)
        .where(
            User.welcome_email_pending.is_(True),
            User.status == UserStatus.ACTIVE,
            User.email.is_not(None),
            # Never rotate a password the user has already used or replaced
            User.requires_password_change.is_(True),
            User.last_login_at.is_(None),
        )
        .order_by(User.id)
        .limit(limit)
    )
    users = list(result.scalars().all())

    summary = RetrySummary()
    for user in users:
        summary.attempted += 1
        if await resend_welcome_email(session, user):
            summary.sent += 1
        else:
            summary.failed += 1
        await session.commit()

    if summary.attempted:
        logger.info(
            f"Welcome email retry: {summary.sent}/{summary.attempted} sent, {summary.failed} still pending"
        )
    return summary
