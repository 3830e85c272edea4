"""Supabase Auth session resolution.

The client sends its Supabase access token as a bearer token (or in the
``sb-access-token`` cookie). The token is checked against the Auth API and
joined with the local ``profiles`` row, which carries the account type and
the verification flag the review flow depends on.
"""

import logging

import httpx
from fastapi import Depends, HTTPException, Request
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel
from sqlmodel import Session, select

from app.core.config import settings
from app.core.db import get_session
from app.core.tracing import get_tracer, safe_span_attributes
from app.models.profiles import Profile

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

ACCESS_TOKEN_COOKIE = "sb-access-token"


class AuthServiceError(Exception):
    """Raised when the identity provider cannot be reached or misbehaves."""

    def __init__(self, message: str, status_code: int = 503, error_code: str = "auth_service_error"):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class AuthenticatedUser(BaseModel):
    """Current session identity plus the profile flags the core reads."""
    user_id: str
    email: str | None = None
    full_name: str | None = None
    user_type: str = "customer"
    is_verified: bool = False


def extract_access_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token:
        return token.strip()
    return request.cookies.get(ACCESS_TOKEN_COOKIE)


async def fetch_identity(access_token: str) -> dict | None:
    """Ask Supabase Auth who owns ``access_token``.

    Returns:
        The user object, or None if the token is invalid or expired

    Raises:
        AuthServiceError: For network errors and unexpected responses
    """
    with tracer.start_as_current_span("auth.fetch_identity") as span:
        span.set_attributes(safe_span_attributes(access_token=access_token))

        try:
            async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
                response = await client.get(
                    f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1/user",
                    headers={
                        "Authorization": f"Bearer {access_token}",
                        "apikey": settings.SUPABASE_ANON_KEY,
                    },
                )
        except httpx.RequestError as e:
            logger.error("Identity provider unreachable", extra={"error": str(e)})
            span.set_status(Status(StatusCode.ERROR, "Network error"))
            raise AuthServiceError("Unable to verify session. Please try again later.")

        if response.status_code in (401, 403):
            span.set_status(Status(StatusCode.ERROR, "Invalid token"))
            return None

        if response.status_code >= 400:
            logger.error(
                "Identity provider error",
                extra={"status_code": response.status_code},
            )
            span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
            raise AuthServiceError(f"Identity provider returned {response.status_code}", status_code=502)

        span.set_status(Status(StatusCode.OK))
        return response.json()


def load_profile(session: Session, user_id: str) -> Profile | None:
    return session.exec(select(Profile).where(Profile.user_id == user_id)).first()


async def get_current_user(
    request: Request,
    session: Session = Depends(get_session),
) -> AuthenticatedUser | None:
    """FastAPI dependency resolving the optional current session."""
    token = extract_access_token(request)
    if not token:
        return None

    try:
        identity = await fetch_identity(token)
    except AuthServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    if not identity or not identity.get("id"):
        return None

    profile = load_profile(session, identity["id"])
    return AuthenticatedUser(
        user_id=identity["id"],
        email=identity.get("email"),
        full_name=profile.full_name if profile else None,
        user_type=profile.user_type if profile else "customer",
        is_verified=profile.is_verified if profile else False,
    )


async def require_user(
    user: AuthenticatedUser | None = Depends(get_current_user),
) -> AuthenticatedUser:
    """FastAPI dependency for endpoints that need a signed-in user."""
    if user is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user
