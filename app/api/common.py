"""Response envelope shared by the API routers."""

from typing import Any


def ok(data: Any = None, message: str | None = None) -> dict:
    """`{"success": true, "data": ...}` with an optional message."""
    body = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body
