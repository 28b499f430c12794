"""SMTP configuration management and message dispatch.

Configurations are named rows in the content store; exactly one may be
active at a time and outbound mail always goes through it. Activating a
configuration deactivates every other one in the same transaction.

Each send opens its own connection and makes a single attempt. Failures are
reported through EmailResult rather than raised.
"""

import logging
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

import aiosmtplib
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.db.models import SmtpConfig
from app.mail.crypto import CredentialError, decrypt_password, encrypt_password

logger = logging.getLogger(__name__)

NO_ACTIVE_CONFIG = "No active SMTP configuration found"


class SmtpConfigError(Exception):
    """Invalid SMTP configuration write."""

    status_code = 400


class SmtpConfigNotFound(SmtpConfigError):
    status_code = 404


@dataclass
class EmailData:
    to: str | list[str]
    subject: str
    html: str | None = None
    text: str | None = None
    from_email: str | None = None
    from_name: str | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class EmailResult:
    """Outcome of a send or connection test."""

    success: bool
    message_id: str | None = None
    error: str | None = None


# --- Configuration CRUD ---


async def list_smtp_configs(session: AsyncSession) -> list[SmtpConfig]:
    result = await session.execute(
        select(SmtpConfig).order_by(SmtpConfig.created_at.desc(), SmtpConfig.id.desc())
    )
    return list(result.scalars().all())


async def get_smtp_config(session: AsyncSession, config_id: int) -> SmtpConfig | None:
    return await session.get(SmtpConfig, config_id)


async def get_active_smtp_config(session: AsyncSession) -> SmtpConfig | None:
    result = await session.execute(
        select(SmtpConfig).where(SmtpConfig.is_active.is_(True)).order_by(SmtpConfig.id)
    )
    return result.scalars().first()


async def _ensure_unique_name(session: AsyncSession, name: str, exclude_id: int | None = None):
    query = select(SmtpConfig.id).where(SmtpConfig.name == name)
    if exclude_id is not None:
        query = query.where(SmtpConfig.id != exclude_id)
    result = await session.execute(query)
    if result.first() is not None:
        raise SmtpConfigError("SMTP configuration with this name already exists")


async def _deactivate_others(session: AsyncSession, config_id: int) -> None:
    await session.execute(
        update(SmtpConfig)
        .where(SmtpConfig.id != config_id, SmtpConfig.is_active.is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session="fetch")
    )


async def create_smtp_config(
    session: AsyncSession,
    name: str,
    host: str,
    port: int,
    username: str,
    password: str,
    from_email: str,
    secure: bool = False,
    from_name: str | None = None,
    is_active: bool = False,
    created_by: int | None = None,
) -> SmtpConfig:
    await _ensure_unique_name(session, name)

    config = SmtpConfig(
        name=name,
        host=host,
        port=port,
        secure=secure,
        username=username,
        password=encrypt_password(password),
        from_email=from_email,
        from_name=from_name,
        is_active=is_active,
        created_by=created_by,
    )
    session.add(config)
    await session.flush()

    if is_active:
        await _deactivate_others(session, config.id)

    logger.info(f"Created SMTP configuration {config.id} '{name}' (active={is_active})")
    return config


async def update_smtp_config(session: AsyncSession, config_id: int, **changes) -> SmtpConfig:
    """Apply the non-None fields of `changes`. A new password is re-encrypted."""
    config = await get_smtp_config(session, config_id)
    if not config:
        raise SmtpConfigNotFound("SMTP configuration not found")

    name = changes.get("name")
    if name and name != config.name:
        await _ensure_unique_name(session, name, exclude_id=config_id)

    for attr in ("name", "host", "port", "secure", "username", "from_email", "from_name"):
        value = changes.get(attr)
        if value is not None:
            setattr(config, attr, value)

    if changes.get("password"):
        config.password = encrypt_password(changes["password"])

    is_active = changes.get("is_active")
    if is_active is not None:
        config.is_active = is_active
        if is_active:
            await _deactivate_others(session, config_id)

    await session.flush()
    logger.info(f"Updated SMTP configuration {config_id}")
    return config


async def activate_smtp_config(session: AsyncSession, config_id: int) -> SmtpConfig:
    return await update_smtp_config(session, config_id, is_active=True)


async def delete_smtp_config(session: AsyncSession, config_id: int) -> None:
    config = await get_smtp_config(session, config_id)
    if not config:
        raise SmtpConfigNotFound("SMTP configuration not found")
    await session.delete(config)
    await session.flush()
    logger.info(f"Deleted SMTP configuration {config_id}")


# --- Transport ---


def build_message(config: SmtpConfig, data: EmailData) -> EmailMessage:
    """Assemble a text and/or HTML message from `data`, defaulting the sender to the config."""
    message = EmailMessage()
    from_email = data.from_email or config.from_email
    from_name = data.from_name or config.from_name
    message["From"] = formataddr((from_name, from_email)) if from_name else from_email
    message["To"] = ", ".join(data.to) if isinstance(data.to, list) else data.to
    message["Subject"] = data.subject
    message["Message-ID"] = make_msgid(domain=from_email.split("@")[-1])
    for name, value in data.headers.items():
        message[name] = value

    if data.text:
        message.set_content(data.text)
        if data.html:
            message.add_alternative(data.html, subtype="html")
    elif data.html:
        message.set_content(data.html, subtype="html")
    else:
        message.set_content("")
    return message


def _transport_kwargs(config: SmtpConfig, password: str) -> dict:
    # secure=True: implicit TLS (usually port 465); otherwise STARTTLS when offered
    return {
        "hostname": config.host,
        "port": config.port,
        "username": config.username or None,
        "password": password if config.username else None,
        "use_tls": config.secure,
        "start_tls": False if config.secure else None,
        "timeout": settings.smtp_timeout_seconds,
    }


async def test_smtp_config(session: AsyncSession, config_id: int) -> EmailResult:
    """Connect and authenticate with a configuration without sending mail."""
    config = await get_smtp_config(session, config_id)
    if not config:
        return EmailResult(success=False, error="SMTP configuration not found")

    if not config.host or not config.port or not config.username:
        return EmailResult(success=False, error="Invalid SMTP configuration")

    try:
        password = decrypt_password(config.password)
        kwargs = _transport_kwargs(config, password)
        smtp = aiosmtplib.SMTP(
            hostname=kwargs["hostname"],
            port=kwargs["port"],
            use_tls=kwargs["use_tls"],
            start_tls=kwargs["start_tls"],
            timeout=kwargs["timeout"],
        )
        async with smtp:
            await smtp.login(config.username, password)
    except (aiosmtplib.SMTPException, CredentialError, OSError) as e:
        logger.warning(f"SMTP test failed for configuration {config_id} ({config.host}:{config.port}): {e}")
        return EmailResult(success=False, error=f"Failed to test SMTP configuration: {e}")

    logger.info(f"SMTP test passed for configuration {config_id} ({config.host}:{config.port})")
    return EmailResult(success=True)


async def send_email(session: AsyncSession, config_id: int, data: EmailData) -> EmailResult:
    """Send one message through a specific (active) configuration. Single attempt."""
    config = await get_smtp_config(session, config_id)
    if not config:
        return EmailResult(success=False, error="SMTP configuration not found")

    if not config.is_active:
        return EmailResult(success=False, error="SMTP configuration is not active")

    message = build_message(config, data)
    try:
        password = decrypt_password(config.password)
        await aiosmtplib.send(message, **_transport_kwargs(config, password))
    except (aiosmtplib.SMTPException, CredentialError, OSError) as e:
        logger.error(f"Failed to send email to {message['To']} via configuration {config_id}: {e}")
        return EmailResult(success=False, error=f"Failed to send email: {e}")

    message_id = message["Message-ID"]
    logger.info(f"Email sent to {message['To']}: message_id={message_id}")
    return EmailResult(success=True, message_id=message_id)


async def send_email_with_active_config(session: AsyncSession, data: EmailData) -> EmailResult:
    config = await get_active_smtp_config(session)
    if not config:
        logger.warning(f"Not sending '{data.subject}': {NO_ACTIVE_CONFIG}")
        return EmailResult(success=False, error=NO_ACTIVE_CONFIG)
    return await send_email(session, config.id, data)
