"""Topic and topic content (TopicDetail) services.

Rules:
- A topic that has content cannot be deleted; the content goes first.
- Content is created once (version 1) and then replaced through a
  compare-and-swap on `version`: the writer submits the version it read and
  the save only lands if nobody saved in between. Every successful save
  bumps the version, changed or not.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.cms.errors import ContentError, ContentNotFound, VersionConflict
from app.db.models import Religion, Topic, TopicDetail, utcnow

logger = logging.getLogger(__name__)


def _topic_query():
    return (
        select(Topic)
        .options(selectinload(Topic.religion), selectinload(Topic.details))
        .execution_options(populate_existing=True)
    )


async def list_topics(session: AsyncSession, religion_id: int | None = None) -> list[Topic]:
    """Topics newest first, with religion and content summary loaded."""
    query = _topic_query().order_by(Topic.created_at.desc(), Topic.id.desc())
    if religion_id is not None:
        query = query.where(Topic.religion_id == religion_id)
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_topic(session: AsyncSession, topic_id: int) -> Topic:
    result = await session.execute(_topic_query().where(Topic.id == topic_id))
    topic = result.scalar_one_or_none()
    if not topic:
        raise ContentNotFound("Topic not found")
    return topic


async def create_topic(
    session: AsyncSession,
    religion_id: int,
    title: str,
    title_en: str | None = None,
    description: str | None = None,
    image_url: str | None = None,
    image_alt: str | None = None,
) -> Topic:
    if not await session.get(Religion, religion_id):
        raise ContentNotFound("Religion not found")

    topic = Topic(
        religion_id=religion_id,
        title=title,
        title_en=title_en,
        description=description or "",
        image_url=image_url or None,
        image_alt=image_alt,
    )
    session.add(topic)
    await session.flush()
    logger.info(f"Created topic {topic.id} '{title}' under religion {religion_id}")
    return await get_topic(session, topic.id)


async def update_topic(session: AsyncSession, topic_id: int, **changes) -> Topic:
    topic = await get_topic(session, topic_id)

    religion_id = changes.get("religion_id")
    if religion_id is not None and religion_id != topic.religion_id:
        if not await session.get(Religion, religion_id):
            raise ContentNotFound("Religion not found")
        topic.religion_id = religion_id

    for attr in ("title", "title_en", "description", "image_url", "image_alt"):
        value = changes.get(attr)
        if value is not None:
            setattr(topic, attr, value)

    await session.flush()
    return await get_topic(session, topic_id)


async def delete_topic(session: AsyncSession, topic_id: int) -> None:
    topic = await get_topic(session, topic_id)
    if topic.details is not None:
        raise ContentError("Cannot delete topic with existing content. Delete the content first.")

    await session.delete(topic)
    await session.flush()
    logger.info(f"Deleted topic {topic_id}")


# --- Content ---


async def get_topic_detail(session: AsyncSession, topic_id: int) -> TopicDetail:
    result = await session.execute(
        select(TopicDetail)
        .options(selectinload(TopicDetail.topic).selectinload(Topic.religion))
        .where(TopicDetail.topic_id == topic_id)
        .execution_options(populate_existing=True)
    )
    detail = result.scalar_one_or_none()
    if not detail:
        raise ContentNotFound("Content not found")
    return detail


async def create_topic_detail(
    session: AsyncSession,
    topic_id: int,
    explanation: str,
    bible_verses: list[str] | None = None,
    key_points: list[str] | None = None,
    references: list[dict] | None = None,
) -> TopicDetail:
    """First save of a topic's content. Always starts at version 1."""
    if not await session.get(Topic, topic_id):
        raise ContentNotFound("Topic not found")

    existing = await session.execute(select(TopicDetail.id).where(TopicDetail.topic_id == topic_id))
    if existing.scalar_one_or_none() is not None:
        raise ContentError("Content already exists for this topic. Use PUT to update.")

    detail = TopicDetail(
        topic_id=topic_id,
        explanation=explanation,
        bible_verses=list(bible_verses or []),
        key_points=list(key_points or []),
        references=list(references or []),
        version=1,
    )
    session.add(detail)
    await session.flush()
    logger.info(f"Created content for topic {topic_id} (version 1)")
    return await get_topic_detail(session, topic_id)


async def update_topic_detail(
    session: AsyncSession,
    topic_id: int,
    expected_version: int,
    explanation: str | None = None,
    bible_verses: list[str] | None = None,
    key_points: list[str] | None = None,
    references: list[dict] | None = None,
) -> TopicDetail:
    """Replace a topic's content if the stored version is `expected_version`.

    Fields left as None keep their stored value. On success the stored
    version becomes `expected_version + 1`.

    Raises:
        ContentNotFound: Topic or content missing.
        VersionConflict: Someone saved since `expected_version` was read.
    """
    if not await session.get(Topic, topic_id):
        raise ContentNotFound("Topic not found")

    values: dict = {"version": expected_version + 1, "updated_at": utcnow()}
    if explanation is not None:
        values["explanation"] = explanation
    if bible_verses is not None:
        values["bible_verses"] = list(bible_verses)
    if key_points is not None:
        values["key_points"] = list(key_points)
    if references is not None:
        values["references"] = list(references)

    result = await session.execute(
        update(TopicDetail)
        .where(TopicDetail.topic_id == topic_id, TopicDetail.version == expected_version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        current = await session.execute(
            select(TopicDetail.version).where(TopicDetail.topic_id == topic_id)
        )
        current_version = current.scalar_one_or_none()
        if current_version is None:
            raise ContentNotFound("Content not found for this topic. Use POST to create.")
        logger.warning(
            f"Version conflict on topic {topic_id}: expected {expected_version}, "
            f"stored {current_version}"
        )
        raise VersionConflict(expected_version, current_version)

    logger.info(f"Saved content for topic {topic_id} (version {expected_version + 1})")
    return await get_topic_detail(session, topic_id)
