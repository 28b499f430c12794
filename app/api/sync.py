"""Sync API routes consumed by the admin sync page and the mobile apps."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.common import ok
from app.auth.deps import get_current_user
from app.db.models import User
from app.db.session import get_db
from app.sync import snapshot

router = APIRouter()


class UpdateCheckRequest(BaseModel):
    version: int | None = None
    last_sync: datetime | None = None


@router.post("/trigger")
async def trigger(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        result = await snapshot.trigger_sync(db, user, request=request)
    except snapshot.SyncPermissionError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    await db.commit()
    return ok(result)


@router.get("/download")
async def download(db: AsyncSession = Depends(get_db)):
    """Full published dataset. Public: mobile clients do not sign in."""
    return ok(await snapshot.build_snapshot(db))


@router.get("/status")
async def status(db: AsyncSession = Depends(get_db)):
    return ok(await snapshot.sync_status(db))


@router.post("/check")
async def check(data: UpdateCheckRequest | None = None, db: AsyncSession = Depends(get_db)):
    data = data or UpdateCheckRequest()
    return ok(await snapshot.check_for_updates(db, data.version, data.last_sync))
