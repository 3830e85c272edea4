"""Same-origin cookie channel.

Lets the client park small JSON values (drafts, the draft manifest) in
HTTP-only cookies and read them back. Values are JSON, percent-encoded so
they stay within the cookie character set.
"""

import json
import logging
from typing import Any
from urllib.parse import quote, unquote

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, Field

from app.core.config import settings

logger = logging.getLogger(__name__)

cookies_router = APIRouter(prefix="/cookies", tags=["cookies"])


class SetCookieRequest(BaseModel):
    """Request model for storing a cookie value."""
    name: str = Field(..., min_length=1)
    value: Any = Field(..., description="Any JSON value")
    expiresDays: int = Field(7, ge=0, le=400)


class CookieValueResponse(BaseModel):
    value: Any = None


def encode_cookie_value(value: Any) -> str:
    return quote(json.dumps(value, separators=(",", ":")), safe="")


def decode_cookie_value(raw: str) -> Any:
    """Decode a stored value; non-JSON cookies are returned as plain strings."""
    text = unquote(raw)
    try:
        return json.loads(text)
    except ValueError:
        return text


@cookies_router.get("/get", response_model=CookieValueResponse)
async def get_cookie(request: Request, name: str | None = None) -> CookieValueResponse:
    if not name:
        raise HTTPException(status_code=400, detail="Cookie name is required")

    raw = request.cookies.get(name)
    if not raw:
        return CookieValueResponse(value=None)
    return CookieValueResponse(value=decode_cookie_value(raw))


@cookies_router.post("/set")
async def set_cookie(body: SetCookieRequest, response: Response) -> dict:
    """
    Store ``value`` under ``name`` for ``expiresDays`` days.

    Oversized values are rejected with 413; clients are expected to move
    large proof payloads out of the value before calling.
    """
    if body.value is None:
        raise HTTPException(status_code=400, detail="Name and value are required")

    encoded = encode_cookie_value(body.value)
    size = len(body.name.encode()) + len(encoded)
    if size > settings.COOKIE_MAX_BYTES:
        logger.warning(
            "Rejected oversized cookie",
            extra={"cookie": body.name, "size": size},
        )
        raise HTTPException(
            status_code=413,
            detail=f"Cookie exceeds {settings.COOKIE_MAX_BYTES} bytes once encoded",
        )

    response.set_cookie(
        key=body.name,
        value=encoded,
        max_age=body.expiresDays * 24 * 60 * 60,
        path="/",
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
    )
    return {"success": True}


@cookies_router.delete("/delete")
async def delete_cookie(response: Response, name: str | None = None) -> dict:
    if not name:
        raise HTTPException(status_code=400, detail="Cookie name is required")

    response.delete_cookie(key=name, path="/")
    return {"success": True}


@cookies_router.get("/list")
async def list_cookies(request: Request) -> dict:
    return {"cookieNames": list(request.cookies.keys())}
