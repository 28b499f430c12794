"""Religion API routes."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.common import ok
from app.auth.deps import require_permission
from app.auth.permissions import CREATE_RELIGIONS, DELETE_RELIGIONS, EDIT_RELIGIONS, VIEW_RELIGIONS
from app.cms import religions as service
from app.cms.errors import ContentError
from app.db.models import User
from app.db.session import get_db
from app.events.activity import log_activity

router = APIRouter()

COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class ReligionCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    name_en: str | None = None
    description: str | None = None
    color: str | None = Field(default=None, pattern=COLOR_PATTERN)


class ReligionUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    name_en: str | None = None
    description: str | None = None
    color: str | None = Field(default=None, pattern=COLOR_PATTERN)


class ReligionResponse(BaseModel):
    id: int
    name: str
    name_en: str | None
    description: str
    color: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReligionListItem(ReligionResponse):
    topic_count: int = 0


@router.get("")
async def list_religions(
    user: User = Depends(require_permission(VIEW_RELIGIONS)),
    db: AsyncSession = Depends(get_db),
):
    rows = await service.list_religions(db)
    items = []
    for religion, topic_count in rows:
        item = ReligionListItem.model_validate(religion)
        item.topic_count = topic_count
        items.append(item)
    return ok(items)


@router.post("", status_code=201)
async def create_religion(
    data: ReligionCreate,
    request: Request,
    user: User = Depends(require_permission(CREATE_RELIGIONS)),
    db: AsyncSession = Depends(get_db),
):
    religion = await service.create_religion(db, data.name, data.name_en, data.description, data.color)
    log_activity(db, user.id, "create_religion", resource="religion", resource_id=religion.id,
                 request=request, name=religion.name)
    await db.commit()
    return ok(ReligionResponse.model_validate(religion), message="Religion created successfully")


@router.get("/{religion_id}")
async def get_religion(
    religion_id: int,
    user: User = Depends(require_permission(VIEW_RELIGIONS)),
    db: AsyncSession = Depends(get_db),
):
    try:
        religion = await service.get_religion(db, religion_id)
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return ok(ReligionResponse.model_validate(religion))


@router.put("/{religion_id}")
async def update_religion(
    religion_id: int,
    data: ReligionUpdate,
    request: Request,
    user: User = Depends(require_permission(EDIT_RELIGIONS)),
    db: AsyncSession = Depends(get_db),
):
    try:
        religion = await service.update_religion(db, religion_id, **data.model_dump())
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    log_activity(db, user.id, "update_religion", resource="religion", resource_id=religion_id,
                 request=request)
    await db.commit()
    return ok(ReligionResponse.model_validate(religion), message="Religion updated successfully")


@router.delete("/{religion_id}")
async def delete_religion(
    religion_id: int,
    request: Request,
    user: User = Depends(require_permission(DELETE_RELIGIONS)),
    db: AsyncSession = Depends(get_db),
):
    try:
        await service.delete_religion(db, religion_id)
    except ContentError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    log_activity(db, user.id, "delete_religion", resource="religion", resource_id=religion_id,
                 request=request)
    await db.commit()
    return ok({"id": religion_id}, message="Religion deleted successfully")
