"""Supabase Storage service layer.

Uploads, public URLs and removal of proof media in the object store. Objects
are laid out as ``draftReviews/{owner_id}/...`` for draft proofs and
``reviews/{owner_id}/...`` for published ones.
"""

import logging
from typing import Protocol
from urllib.parse import quote

import httpx
from opentelemetry.trace import Status, StatusCode

from app.core.config import settings
from app.core.tracing import get_tracer, safe_span_attributes

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


class StorageServiceError(Exception):
    """Base exception for object storage errors."""

    def __init__(self, message: str, status_code: int = 502, error_code: str = "storage_service_error"):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class ObjectConflictError(StorageServiceError):
    """Raised when an object already exists at the upload path."""

    def __init__(self, message: str = "Object already exists"):
        super().__init__(message=message, status_code=409, error_code="object_exists")


def _error_message(response: httpx.Response) -> str:
    """Pull a message out of an error response; gateways may answer with HTML."""
    try:
        error_data = response.json() if response.content else {}
    except ValueError:
        return response.text[:200] or "Unknown error"
    if not isinstance(error_data, dict):
        return "Unknown error"
    return error_data.get("message") or error_data.get("error") or "Unknown error"


class ObjectStore(Protocol):
    async def upload(self, path: str, content: bytes, content_type: str) -> str: ...

    def get_public_url(self, path: str) -> str: ...

    async def remove(self, paths: list[str]) -> None: ...


class SupabaseStorage:
    """ObjectStore backed by the Supabase Storage REST API."""

    def __init__(self, base_url: str, service_key: str, bucket: str, timeout: float = 15.0):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.bucket = bucket
        self.timeout = timeout

    def _headers(self, content_type: str | None = None) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/{self.bucket}/{quote(path)}"

    def get_public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{quote(path)}"

    async def upload(self, path: str, content: bytes, content_type: str) -> str:
        """Upload ``content`` to ``path`` and return the stored path.

        Raises:
            ObjectConflictError: If an object already exists at ``path``
            StorageServiceError: For API and network errors
        """
        with tracer.start_as_current_span("storage.upload") as span:
            span.set_attributes(safe_span_attributes(
                bucket=self.bucket,
                path=path,
                size=len(content),
                content_type=content_type,
            ))

            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(
                        self._object_url(path),
                        content=content,
                        headers=self._headers(content_type),
                    )
            except httpx.TimeoutException:
                logger.error("Object storage timeout", extra={"path": path})
                span.set_status(Status(StatusCode.ERROR, "Timeout"))
                raise StorageServiceError("Object storage request timed out", status_code=504, error_code="storage_timeout")
            except httpx.RequestError as e:
                logger.error("Object storage network error", extra={"path": path, "error": str(e)})
                span.set_status(Status(StatusCode.ERROR, "Network error"))
                raise StorageServiceError("Unable to reach object storage", status_code=503, error_code="storage_unavailable")

            if response.status_code == 409:
                span.set_status(Status(StatusCode.ERROR, "Conflict"))
                raise ObjectConflictError(f"Object already exists at {path}")

            if response.status_code >= 400:
                error_message = _error_message(response)
                logger.error(
                    "Object storage upload failed",
                    extra={"path": path, "status_code": response.status_code, "error": error_message},
                )
                span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
                raise StorageServiceError(f"Upload failed: {error_message}", error_code="upload_failed")

            logger.info("Uploaded object", extra={"path": path, "size": len(content)})
            span.set_status(Status(StatusCode.OK))
            return path

    async def remove(self, paths: list[str]) -> None:
        """Delete objects; paths that do not exist are ignored by the API."""
        if not paths:
            return

        with tracer.start_as_current_span("storage.remove") as span:
            span.set_attributes(safe_span_attributes(bucket=self.bucket, count=len(paths)))

            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        "DELETE",
                        f"{self.base_url}/storage/v1/object/{self.bucket}",
                        json={"prefixes": paths},
                        headers=self._headers("application/json"),
                    )
            except httpx.RequestError as e:
                logger.error("Object storage network error", extra={"paths": paths, "error": str(e)})
                span.set_status(Status(StatusCode.ERROR, "Network error"))
                raise StorageServiceError("Unable to reach object storage", status_code=503, error_code="storage_unavailable")

            if response.status_code >= 400:
                logger.error(
                    "Object storage delete failed",
                    extra={"paths": paths, "status_code": response.status_code},
                )
                span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
                raise StorageServiceError(f"Delete failed with status {response.status_code}", error_code="delete_failed")

            span.set_status(Status(StatusCode.OK))

    async def ping(self) -> bool:
        async with httpx.AsyncClient(timeout=2.0) as client:
            response = await client.get(
                f"{self.base_url}/storage/v1/bucket/{self.bucket}",
                headers=self._headers(),
            )
        return response.status_code == 200


_object_store: SupabaseStorage | None = None


def get_object_store() -> ObjectStore:
    """FastAPI dependency returning the configured object store."""
    global _object_store
    if _object_store is None:
        _object_store = SupabaseStorage(
            base_url=settings.SUPABASE_URL,
            service_key=settings.SUPABASE_SERVICE_ROLE_KEY,
            bucket=settings.PROOF_BUCKET,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    return _object_store
