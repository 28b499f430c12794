"""Topic and topic content API routes."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.common import ok
from app.auth.deps import require_permission
from app.auth.permissions import (
    CREATE_TOPICS,
    DELETE_TOPICS,
    EDIT_CONTENT,
    EDIT_TOPICS,
    VIEW_CONTENT,
    VIEW_TOPICS,
)
from app.cms import topics as service
from app.cms.errors import ContentError, VersionConflict
from app.cms.verses import split_verse_citations
from app.db.models import Topic, TopicDetail, User
from app.db.session import get_db
from app.events.activity import log_activity

router = APIRouter()


class TopicCreate(BaseModel):
    religion_id: int
    title: str = Field(min_length=1, max_length=255)
    title_en: str | None = None
    description: str | None = None
    image_url: str | None = Field(default=None, max_length=500)
    image_alt: str | None = None


class TopicUpdate(BaseModel):
    religion_id: int | None = None
    title: str | None = Field(default=None, min_length=1, max_length=255)
    title_en: str | None = None
    description: str | None = None
    image_url: str | None = Field(default=None, max_length=500)
    image_alt: str | None = None


class ReligionSummary(BaseModel):
    id: int
    name: str
    name_en: str | None
    color: str

    model_config = {"from_attributes": True}


class DetailSummary(BaseModel):
    id: int
    version: int
    updated_at: datetime

    model_config = {"from_attributes": True}


class TopicResponse(BaseModel):
    id: int
    religion_id: int
    title: str
    title_en: str | None
    description: str
    image_url: str | None
    image_alt: str | None
    created_at: datetime
    updated_at: datetime
    religion: ReligionSummary
    details: DetailSummary | None

    model_config = {"from_attributes": True}


class Reference(BaseModel):
    verse: str = Field(min_length=1)
    text: str = ""
    explanation: str = ""


class ContentCreate(BaseModel):
    explanation: str = Field(min_length=1)
    bible_verses: list[str] = []
    key_points: list[str] = []
    references: list[Reference] = []


class ContentUpdate(BaseModel):
    # Version the client read; the save is rejected if it is stale
    version: int = Field(ge=1)
    explanation: str | None = Field(default=None, min_length=1)
    bible_verses: list[str] | None = None
    key_points: list[str] | None = None
    references: list[Reference] | None = None


class TextPartResponse(BaseModel):
    type: str
    content: str

    model_config = {"from_attributes": True}


class ContentResponse(BaseModel):
    id: int
    topic_id: int
    explanation: str
    bible_verses: list[str]
    key_points: list[str]
    references: list[dict]
    version: int
    created_at: datetime
    updated_at: datetime
    explanation_parts: list[TextPartResponse] = []

    model_config = {"from_attributes": True}


def _topic_response(topic: Topic) -> TopicResponse:
    return TopicResponse.model_validate(topic)


def _content_response(detail: TopicDetail) -> ContentResponse:
    content = ContentResponse.model_validate(detail)
    content.explanation_parts = [TextPartResponse.model_validate(p) for p in split_verse_citations(detail.explanation)]
    return content


@router.get("")
async def list_topics(
    religion_id: int | None = None,
    user: User = Depends(require_permission(VIEW_TOPICS)),
    db: AsyncSession = Depends(get_db),
):
    topics = await service.list_topics(db, religion_id)
    return ok([_topic_response(t) for t in topics])


@router.post("", status_code=201)
async def create_topic(
    data: TopicCreate,
    request: Request,
    user: User = Depends(require_permission(CREATE_TOPICS)),
    db: AsyncSession = Depends(get_db),
):
    try:
        topic = await service.create_topic(db, **data.model_dump())
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    log_activity(db, user.id, "create_topic", resource="topic", resource_id=topic.id,
                 request=request, title=topic.title)
    await db.commit()
    return ok(_topic_response(topic), message="Topic created successfully")


@router.get("/{topic_id}")
async def get_topic(
    topic_id: int,
    user: User = Depends(require_permission(VIEW_TOPICS)),
    db: AsyncSession = Depends(get_db),
):
    try:
        topic = await service.get_topic(db, topic_id)
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return ok(_topic_response(topic))


@router.put("/{topic_id}")
async def update_topic(
    topic_id: int,
    data: TopicUpdate,
    request: Request,
    user: User = Depends(require_permission(EDIT_TOPICS)),
    db: AsyncSession = Depends(get_db),
):
    try:
        topic = await service.update_topic(db, topic_id, **data.model_dump())
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    log_activity(db, user.id, "update_topic", resource="topic", resource_id=topic_id, request=request)
    await db.commit()
    return ok(_topic_response(topic), message="Topic updated successfully")


@router.delete("/{topic_id}")
async def delete_topic(
    topic_id: int,
    request: Request,
    user: User = Depends(require_permission(DELETE_TOPICS)),
    db: AsyncSession = Depends(get_db),
):
    try:
        await service.delete_topic(db, topic_id)
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    log_activity(db, user.id, "delete_topic", resource="topic", resource_id=topic_id, request=request)
    await db.commit()
    return ok({"id": topic_id}, message="Topic deleted successfully")


# --- Content ---


@router.get("/{topic_id}/content")
async def get_content(
    topic_id: int,
    user: User = Depends(require_permission(VIEW_CONTENT)),
    db: AsyncSession = Depends(get_db),
):
    try:
        detail = await service.get_topic_detail(db, topic_id)
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return ok(_content_response(detail))


@router.post("/{topic_id}/content", status_code=201)
async def create_content(
    topic_id: int,
    data: ContentCreate,
    request: Request,
    user: User = Depends(require_permission(EDIT_CONTENT)),
    db: AsyncSession = Depends(get_db),
):
    try:
        detail = await service.create_topic_detail(
            db,
            topic_id,
            explanation=data.explanation,
            bible_verses=data.bible_verses,
            key_points=data.key_points,
            references=[r.model_dump() for r in data.references],
        )
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    log_activity(db, user.id, "create_content", resource="topic", resource_id=topic_id,
                 request=request, version=detail.version)
    await db.commit()
    return ok(_content_response(detail), message="Content created successfully")


@router.put("/{topic_id}/content")
async def update_content(
    topic_id: int,
    data: ContentUpdate,
    request: Request,
    user: User = Depends(require_permission(EDIT_CONTENT)),
    db: AsyncSession = Depends(get_db),
):
    """Save content if `version` still matches the stored version (409 otherwise)."""
    try:
        detail = await service.update_topic_detail(
            db,
            topic_id,
            expected_version=data.version,
            explanation=data.explanation,
            bible_verses=data.bible_verses,
            key_points=data.key_points,
            references=[r.model_dump() for r in data.references] if data.references is not None else None,
        )
    except VersionConflict as e:
        await db.rollback()
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    log_activity(db, user.id, "update_content", resource="topic", resource_id=topic_id,
                 request=request, version=detail.version)
    await db.commit()
    return ok(_content_response(detail), message="Content updated successfully")
