"""Proof media validation, object paths and upload."""

import logging
from datetime import datetime

from app.core.config import settings
from app.core.ids import epoch_ms
from app.drafts.payload import HostedPayload, InlinePayload
from app.integrations.storage_service import ObjectStore

logger = logging.getLogger(__name__)


class ProofValidationError(ValueError):
    """Raised when proof media is too large or of an unsupported type."""


def validate_proof(payload: InlinePayload) -> None:
    if payload.mime_type not in settings.ALLOWED_PROOF_TYPES_LIST:
        raise ProofValidationError(
            "Invalid file type! Please upload JPG, PNG, GIF or MP4 files only."
        )
    if payload.approx_size > settings.MAX_PROOF_BYTES:
        limit_mb = settings.MAX_PROOF_BYTES // (1024 * 1024)
        raise ProofValidationError(
            f"File is too large! Please upload a file smaller than {limit_mb}MB."
        )


def draft_proof_path(owner_id: str, author_id: str, extension: str, now: datetime) -> str:
    return f"draftReviews/{owner_id}/draft_{author_id}_{epoch_ms(now)}.{extension}"


def review_proof_path(owner_id: str, author_id: str, extension: str, now: datetime) -> str:
    return f"reviews/{owner_id}/{author_id}-{epoch_ms(now)}.{extension}"


async def upload_inline_proof(store: ObjectStore, payload: InlinePayload, path: str) -> HostedPayload:
    """Decode ``payload``, upload it to ``path`` and return the hosted form.

    Raises:
        ProofValidationError: If the media fails type/size checks
        InvalidPayloadError: If the base64 body does not decode
        StorageServiceError: If the upload fails
    """
    validate_proof(payload)
    content = payload.content()
    stored_path = await store.upload(path, content, payload.mime_type)
    return HostedPayload(
        url=store.get_public_url(stored_path),
        media_kind=payload.media_kind,
        file_name=stored_path,
    )
