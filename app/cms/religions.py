"""Religion CRUD."""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cms.errors import ContentError, ContentNotFound
from app.db.models import Religion, Topic

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#8B4513"


async def list_religions(session: AsyncSession) -> list[tuple[Religion, int]]:
    """All religions ordered by name, each with its topic count."""
    topic_count = (
        select(Topic.religion_id, func.count(Topic.id).label("topic_count"))
        .group_by(Topic.religion_id)
        .subquery()
    )
    result = await session.execute(
        select(Religion, func.coalesce(topic_count.c.topic_count, 0))
        .outerjoin(topic_count, topic_count.c.religion_id == Religion.id)
        .order_by(Religion.name)
    )
    return [(religion, count) for religion, count in result.all()]


async def get_religion(session: AsyncSession, religion_id: int) -> Religion:
    religion = await session.get(Religion, religion_id)
    if not religion:
        raise ContentNotFound("Religion not found")
    return religion


async def create_religion(
    session: AsyncSession,
    name: str,
    name_en: str | None = None,
    description: str | None = None,
    color: str | None = None,
) -> Religion:
    religion = Religion(
        name=name,
        name_en=name_en,
        description=description or "",
        color=color or DEFAULT_COLOR,
    )
    session.add(religion)
    await session.flush()
    logger.info(f"Created religion {religion.id} '{name}'")
    return religion


async def update_religion(session: AsyncSession, religion_id: int, **changes) -> Religion:
    """Apply the non-None fields of `changes`."""
    religion = await get_religion(session, religion_id)
    for attr in ("name", "name_en", "description", "color"):
        value = changes.get(attr)
        if value is not None:
            setattr(religion, attr, value)
    await session.flush()
    return religion


async def delete_religion(session: AsyncSession, religion_id: int) -> None:
    religion = await get_religion(session, religion_id)

    result = await session.execute(
        select(func.count(Topic.id)).where(Topic.religion_id == religion_id)
    )
    if result.scalar_one() > 0:
        raise ContentError("Cannot delete religion with existing topics")

    await session.delete(religion)
    await session.flush()
    logger.info(f"Deleted religion {religion_id}")
