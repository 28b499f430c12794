"""Async client for the sync endpoints.

Used by the admin sync page and by mobile apps. `trigger()` walks a small
lifecycle that mirrors the real request: idle, pending while the request is
in flight, then completed or failed. Nothing is retried; failures are kept in
`errors` for display.
"""

import asyncio
import enum
import logging
from datetime import datetime, timedelta

import httpx

from app.config import settings
from app.db.models import utcnow
from app.sync.snapshot import count_recent_changes, isoformat

logger = logging.getLogger(__name__)


class SyncPhase(str, enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncClientError(Exception):
    """A sync endpoint answered with an error or could not be reached."""


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Ignoring unparseable timestamp {value!r}")
        return None


def recent_changes_from_snapshot(
    snapshot: dict,
    now: datetime,
    window: timedelta | None = None,
) -> dict:
    """Recent-change counts computed from a downloaded snapshot."""
    counts = {
        "religions": count_recent_changes(
            (_parse_timestamp(r.get("updated_at")) for r in snapshot.get("religions", [])), now, window
        ),
        "topics": count_recent_changes(
            (_parse_timestamp(t.get("updated_at")) for t in snapshot.get("topics", [])), now, window
        ),
        "details": count_recent_changes(
            (_parse_timestamp(d.get("updated_at")) for d in snapshot.get("topic_details", [])), now, window
        ),
    }
    counts["total"] = counts["religions"] + counts["topics"] + counts["details"]
    return counts


class SyncClient:
    def __init__(
        self,
        token: str | None = None,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url or settings.cms_api_base_url)
        self.phase = SyncPhase.IDLE
        self.errors: list[str] = []
        self.last_result: dict | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    def _headers(self) -> dict:
        if self._token:
            return {"Authorization": f"Bearer {self._token}"}
        return {}

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        """Issue a request and return the `data` of a successful envelope."""
        try:
            response = await self._client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise SyncClientError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise SyncClientError(f"{method} {path} returned invalid JSON (HTTP {response.status_code})") from e
        if not isinstance(body, dict):
            raise SyncClientError(f"{method} {path} returned an unexpected body (HTTP {response.status_code})")

        if response.is_error or not body.get("success"):
            message = body.get("error") or body.get("message") or f"HTTP {response.status_code}"
            raise SyncClientError(message)
        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise SyncClientError(f"{method} {path} returned unexpected data")
        return data

    async def trigger(self) -> dict | None:
        """Trigger a manual sync. Returns the sync result, or None on failure."""
        self.phase = SyncPhase.PENDING
        try:
            result = await self._request("POST", "/api/sync/trigger")
        except SyncClientError as e:
            self.phase = SyncPhase.FAILED
            self.errors.append(str(e))
            logger.error(f"Sync trigger failed: {e}")
            return None

        self.phase = SyncPhase.COMPLETED
        self.last_result = result
        logger.info(f"Sync completed: version={result.get('version')}")
        return result

    def reset(self) -> None:
        self.phase = SyncPhase.IDLE
        self.errors.clear()

    async def load_stats(self, now: datetime | None = None) -> dict:
        """Fetch status and snapshot concurrently and derive recent-change counts."""
        status, snapshot = await asyncio.gather(
            self._request("GET", "/api/sync/status"),
            self._request("GET", "/api/sync/download"),
        )
        now = now or utcnow()
        return {
            "status": status,
            "recent_changes": recent_changes_from_snapshot(snapshot, now),
            "version": snapshot.get("version"),
        }

    async def check_for_updates(
        self,
        local_version: int | None = None,
        last_sync: datetime | None = None,
    ) -> dict:
        payload = {}
        if local_version is not None:
            payload["version"] = local_version
        if last_sync is not None:
            payload["last_sync"] = isoformat(last_sync)
        return await self._request("POST", "/api/sync/check", json=payload)

    async def download(self) -> dict:
        return await self._request("GET", "/api/sync/download")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
