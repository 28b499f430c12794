"""Celery tasks for account email.

Handles:
- Retrying welcome emails left pending by a failed send (periodic)
- Resending a single user's welcome email (triggered manually)
"""

import asyncio
import logging
from dataclasses import asdict

from app.db.models import User
from app.db.session import async_session
from app.mail.email_service import resend_welcome_email, retry_pending_welcome_emails
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run_async(coro):
    """Bridge sync Celery tasks with async code."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@celery_app.task(name="app.workers.mail_tasks.retry_pending_welcome_emails_task")
def retry_pending_welcome_emails_task(limit: int = 50):
    """Periodic: resend welcome email to every user still flagged pending."""
    return _run_async(_retry_pending(limit))


async def _retry_pending(limit: int) -> dict:
    async with async_session() as session:
        summary = await retry_pending_welcome_emails(session, limit=limit)
    return asdict(summary)


@celery_app.task(name="app.workers.mail_tasks.resend_welcome_email_task")
def resend_welcome_email_task(user_id: int):
    return _run_async(_resend_one(user_id))


async def _resend_one(user_id: int) -> dict:
    async with async_session() as session:
        user = await session.get(User, user_id)
        if not user:
            logger.warning(f"Welcome resend skipped: user {user_id} not found")
            return {"status": "skipped", "reason": "user not found"}
        if not user.welcome_email_pending or user.last_login_at is not None:
            logger.info(f"Welcome resend skipped: user {user_id} no longer pending")
            return {"status": "skipped", "reason": "not pending"}

        sent = await resend_welcome_email(session, user)
        await session.commit()
    return {"status": "sent" if sent else "pending", "user_id": user_id}
