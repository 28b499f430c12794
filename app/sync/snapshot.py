"""Server side of mobile content sync.

Mobile apps pull the full published dataset as one snapshot; there is no
delta encoding or pagination. The snapshot version is the version of the
most recently saved TopicDetail. It is not monotonic: new content starts
at version 1, and religion or topic edits leave it unchanged. Update checks
therefore treat any version mismatch as stale and also compare the last
content update against the client's `last_sync` when one is sent.

Recent-change counts use an inclusive window: a row updated exactly
`recent_changes_window_hours` ago still counts.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.auth.permissions import MANAGE_SYNC, check_permission
from app.config import settings
from app.db.models import Religion, Topic, TopicDetail, User, utcnow
from app.events.activity import log_activity

logger = logging.getLogger(__name__)

SUPPORTED_FEATURES = ["full_snapshot", "content_versions", "bible_verses", "update_check"]


class SyncPermissionError(Exception):
    status_code = 403


@dataclass
class ContentStatistics:
    religions: int
    topics: int
    topic_details: int

    @property
    def total(self) -> int:
        return self.religions + self.topics + self.topic_details

    def to_dict(self) -> dict:
        return {
            "religions": self.religions,
            "topics": self.topics,
            "topic_details": self.topic_details,
            "total_items": self.total,
        }


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def isoformat(value: datetime | None) -> str | None:
    """ISO-8601 with an explicit UTC offset for a stored naive UTC timestamp."""
    if value is None:
        return None
    return to_naive_utc(value).replace(tzinfo=timezone.utc).isoformat()


def _window(window: timedelta | None) -> timedelta:
    return window if window is not None else timedelta(hours=settings.recent_changes_window_hours)


def count_recent_changes(
    timestamps: Iterable[datetime | None],
    now: datetime,
    window: timedelta | None = None,
) -> int:
    """Count timestamps within `window` of `now` (boundary inclusive)."""
    cutoff = to_naive_utc(now) - _window(window)
    return sum(1 for ts in timestamps if ts is not None and to_naive_utc(ts) >= cutoff)


def estimate_data_size(total_items: int) -> str:
    """Rough payload size shown to operators, about half a kilobyte per item."""
    return f"{(total_items + 1) // 2}KB"


async def content_statistics(session: AsyncSession) -> ContentStatistics:
    religions = await session.scalar(select(func.count()).select_from(Religion))
    topics = await session.scalar(select(func.count()).select_from(Topic))
    details = await session.scalar(select(func.count()).select_from(TopicDetail))
    return ContentStatistics(religions=religions or 0, topics=topics or 0, topic_details=details or 0)


async def latest_version(session: AsyncSession) -> tuple[int, datetime | None]:
    """Version and save time of the most recently updated TopicDetail (1, None when empty)."""
    result = await session.execute(
        select(TopicDetail.version, TopicDetail.updated_at)
        .order_by(TopicDetail.updated_at.desc(), TopicDetail.id.desc())
        .limit(1)
    )
    row = result.first()
    if row is None:
        return 1, None
    return row.version, row.updated_at


async def latest_update(session: AsyncSession) -> datetime | None:
    """Most recent update across religions, topics and topic details."""
    candidates = [
        await session.scalar(select(func.max(Religion.updated_at))),
        await session.scalar(select(func.max(Topic.updated_at))),
        await session.scalar(select(func.max(TopicDetail.updated_at))),
    ]
    candidates = [c for c in candidates if c is not None]
    return max(candidates) if candidates else None


async def recent_changes(
    session: AsyncSession,
    now: datetime | None = None,
    window: timedelta | None = None,
) -> dict:
    """Per-family counts of rows updated inside the recent window."""
    cutoff = to_naive_utc(now or utcnow()) - _window(window)
    counts = {}
    for key, model in (("religions", Religion), ("topics", Topic), ("details", TopicDetail)):
        counts[key] = await session.scalar(
            select(func.count()).select_from(model).where(model.updated_at >= cutoff)
        ) or 0
    counts["total"] = counts["religions"] + counts["topics"] + counts["details"]
    return counts


def serialize_religion(religion: Religion) -> dict:
    return {
        "id": religion.id,
        "name": religion.name,
        "name_en": religion.name_en,
        "description": religion.description,
        "color": religion.color,
        "created_at": isoformat(religion.created_at),
        "updated_at": isoformat(religion.updated_at),
    }


def serialize_topic(topic: Topic) -> dict:
    return {
        "id": topic.id,
        "religion_id": topic.religion_id,
        "title": topic.title,
        "title_en": topic.title_en,
        "description": topic.description,
        "image_url": topic.image_url,
        "image_alt": topic.image_alt,
        "created_at": isoformat(topic.created_at),
        "updated_at": isoformat(topic.updated_at),
    }


def serialize_topic_detail(detail: TopicDetail) -> dict:
    return {
        "id": detail.id,
        "topic_id": detail.topic_id,
        "explanation": detail.explanation,
        "bible_verses": list(detail.bible_verses or []),
        "key_points": list(detail.key_points or []),
        "references": list(detail.references or []),
        "version": detail.version,
        "created_at": isoformat(detail.created_at),
        "updated_at": isoformat(detail.updated_at),
    }


async def build_snapshot(session: AsyncSession) -> dict:
    """The full published dataset for mobile clients."""
    result = await session.execute(
        select(Religion)
        .options(selectinload(Religion.topics).selectinload(Topic.details))
        .order_by(Religion.name)
    )
    religions = list(result.scalars().all())

    topics = [topic for religion in religions for topic in sorted(religion.topics, key=lambda t: t.id)]
    details = [topic.details for topic in topics if topic.details is not None]

    version, _ = await latest_version(session)
    last_updated = await latest_update(session)

    return {
        "version": version,
        "last_updated": isoformat(last_updated or utcnow()),
        "religions": [serialize_religion(r) for r in religions],
        "topics": [serialize_topic(t) for t in topics],
        "topic_details": [serialize_topic_detail(d) for d in details],
    }


async def trigger_sync(session: AsyncSession, user: User, now: datetime | None = None, request=None) -> dict:
    """Record a manual sync and report what mobile clients will receive.

    Raises:
        SyncPermissionError: `user` lacks manage_sync.
    """
    if not check_permission(user.role, user.permissions, MANAGE_SYNC):
        raise SyncPermissionError("You need the manage_sync permission to trigger sync")

    now = now or utcnow()
    statistics = await content_statistics(session)
    version, _ = await latest_version(session)
    changes = await recent_changes(session, now)

    result = {
        "timestamp": isoformat(now),
        "version": version,
        "statistics": statistics.to_dict(),
        "recent_changes": changes,
        "status": "completed",
        "message": "Manual sync triggered successfully. Mobile apps will receive updates on next sync.",
        "triggered_by": user.username,
        "mobile_apps_notified": 0,
        "data_size": estimate_data_size(statistics.total),
    }

    log_activity(
        session,
        user.id,
        "trigger_sync",
        resource="sync",
        request=request,
        version=version,
        total_items=statistics.total,
    )
    logger.info(
        f"Manual sync triggered by {user.username}: version={version}, "
        f"items={statistics.total}, recent={changes['total']}"
    )
    return result


async def sync_status(session: AsyncSession, now: datetime | None = None) -> dict:
    statistics = await content_statistics(session)
    now = now or utcnow()
    last_updated = await latest_update(session)
    version, _ = await latest_version(session)

    return {
        "religion_count": statistics.religions,
        "topic_count": statistics.topics,
        "topic_detail_count": statistics.topic_details,
        "version": version,
        "last_updated": isoformat(last_updated or now),
        "server_time": isoformat(now),
        "content_summary": {
            "religions": statistics.religions,
            "topics": statistics.topics,
            "topic_details": statistics.topic_details,
            "total": statistics.total,
        },
        "sync_info": {
            "server_version": settings.server_version,
            "api_version": settings.api_version,
            "supported_features": list(SUPPORTED_FEATURES),
        },
    }


async def check_for_updates(
    session: AsyncSession,
    local_version: int | None = None,
    last_sync: datetime | None = None,
) -> dict:
    """Tell a client whether its copy is stale.

    Stale when `local_version` differs from the current version, or when
    any content was updated after `last_sync`. A client that sends neither
    has never synced.
    """
    statistics = await content_statistics(session)
    version, _ = await latest_version(session)
    last_updated = await latest_update(session)

    if local_version is None and last_sync is None:
        has_updates = True
    else:
        has_updates = local_version is not None and version != local_version
        if last_sync is not None and last_updated is not None:
            has_updates = has_updates or last_updated > to_naive_utc(last_sync)

    return {
        "has_updates": has_updates,
        "current_version": version,
        "last_updated": isoformat(last_updated),
        "update_size": estimate_data_size(statistics.total),
        "statistics": statistics.to_dict(),
    }
