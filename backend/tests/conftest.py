"""Pytest configuration and shared fixtures."""

import base64
import os
from typing import Any, AsyncGenerator, Callable, Generator

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ.update({
    "ENVIRONMENT": "test",
    "DATABASE_URL": "sqlite://",
    "SUPABASE_URL": "https://test-project.supabase.co",
    "SUPABASE_ANON_KEY": "test-anon-key-1234567890",
    "SUPABASE_SERVICE_ROLE_KEY": "test-service-role-key-1234567890",
    "TEMP_STORAGE_BACKEND": "memory",
    "OTEL_TRACES_EXPORTER": "none",
})

from sqlmodel import Session, SQLModel  # noqa: E402

from app.core.auth import AuthenticatedUser  # noqa: E402
from app.integrations.storage_service import StorageServiceError  # noqa: E402
from app.models.listings import Listing  # noqa: E402

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


class FakeObjectStore:
    """In-memory ObjectStore that records uploads and removals."""

    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.removed: list[str] = []
        self.fail_uploads = False
        self.fail_removes = False

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        if self.fail_uploads:
            raise StorageServiceError("Upload failed: bucket unavailable", error_code="upload_failed")
        self.objects[path] = (content, content_type)
        return path

    def get_public_url(self, path: str) -> str:
        return f"https://test-project.supabase.co/storage/v1/object/public/review-proofs/{path}"

    async def remove(self, paths: list[str]) -> None:
        if self.fail_removes:
            raise StorageServiceError("Delete failed with status 500", error_code="delete_failed")
        for path in paths:
            self.removed.append(path)
            self.objects.pop(path, None)

    async def ping(self) -> bool:
        return True


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    """Fresh in-memory schema per test."""
    from app.core.db import engine

    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def make_listing(db_session: Session) -> Callable[..., Listing]:
    """Factory for persisted listings (verified, owned by ``owner-1`` by default)."""

    def _make(listing_id: str = "L1", **overrides: Any) -> Listing:
        values = {
            "id": listing_id,
            "owner_id": "owner-1",
            "name": f"Business {listing_id}",
            "category": "restaurants",
            "city": "Karachi",
            "country": "Pakistan",
            "verification_status": "verified",
        }
        values.update(overrides)
        listing = Listing(**values)
        db_session.add(listing)
        db_session.commit()
        db_session.refresh(listing)
        return listing

    return _make


@pytest.fixture
def verified_customer() -> AuthenticatedUser:
    return AuthenticatedUser(
        user_id="user-123456",
        email="reviewer@example.com",
        full_name="Test Reviewer",
        user_type="customer",
        is_verified=True,
    )


@pytest.fixture
def png_data_uri() -> Callable[[int], str]:
    """Build a PNG data URI whose decoded size is ``size`` bytes."""

    def _make(size: int = 64) -> str:
        raw = PNG_MAGIC + b"\x00" * max(size - len(PNG_MAGIC), 0)
        return "data:image/png;base64," + base64.b64encode(raw).decode()

    return _make


@pytest.fixture
def current_user(verified_customer: AuthenticatedUser) -> dict[str, AuthenticatedUser | None]:
    """Mutable holder for the user the test client is signed in as."""
    return {"user": verified_customer}


@pytest.fixture
def client(
    db_session: Session,
    object_store: FakeObjectStore,
    current_user: dict[str, AuthenticatedUser | None],
) -> Generator[TestClient, None, None]:
    """FastAPI test client with database, storage and auth overridden."""
    from app.core.auth import get_current_user
    from app.core.db import get_session
    from app.integrations.storage_service import get_object_store
    from app.main import app

    def override_session():
        yield db_session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_object_store] = lambda: object_store
    app.dependency_overrides[get_current_user] = lambda: current_user["user"]

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def asgi_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async client bound to the app in-process; keeps cookies like a browser."""
    from app.main import app

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as client:
        yield client
