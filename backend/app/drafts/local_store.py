"""Browser-tier draft store.

One slot per listing (``draft_review_<listing_id>``), last write wins. Reads
fail open: anything that does not decode is logged and treated as absent.
"""

import json
import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any

from app.core.ids import utcnow
from app.drafts.browser_storage import BrowserStorage
from app.drafts.payload import coerce_payload
from app.drafts.schemas import StoredDraft, parse_stored_draft

logger = logging.getLogger(__name__)

DRAFT_KEY_PREFIX = "draft_review_"
DEVICE_ID_KEY = "review_device_id"


def draft_key(listing_id: str) -> str:
    return f"{DRAFT_KEY_PREFIX}{listing_id}"


class LocalDraftStore:
    """Read/write anonymous drafts in browser storage."""

    def __init__(self, storage: BrowserStorage, clock: Callable[[], datetime] = utcnow):
        self.storage = storage
        self.clock = clock

    def device_id(self) -> str:
        """Stable pseudo-identity for this browser profile, created on first use."""
        device_id = self.storage.get_item(DEVICE_ID_KEY)
        if not device_id:
            device_id = f"device_{uuid.uuid4().hex}"
            self.storage.set_item(DEVICE_ID_KEY, device_id)
        return device_id

    def save_local(self, listing_id: str, partial_draft: Mapping[str, Any]) -> StoredDraft:
        """Overwrite the slot for ``listing_id`` with ``partial_draft``.

        Proof data must arrive tagged (a payload or a data URI); untyped
        base64 is rejected here so new drafts never need MIME sniffing.

        Raises:
            InvalidPayloadError: If the proof has no MIME type
            pydantic.ValidationError: If a field is out of range
            StorageQuotaError: If the serialized draft does not fit
        """
        fields = dict(partial_draft)
        fields.pop("listing_id", None)
        proof = coerce_payload(fields.pop("proof", None), allow_untyped=False)

        now = self.clock()
        previous = self.read_local(listing_id)
        draft = StoredDraft.model_validate({
            **fields,
            "listing_id": listing_id,
            "device_id": self.device_id(),
            "proof": proof,
            "created_at": previous.created_at if previous and previous.created_at else now,
            "updated_at": now,
        })

        self.storage.set_item(draft_key(listing_id), draft.model_dump_json(exclude_none=True))
        logger.debug("Saved local draft", extra={"listing_id": listing_id})
        return draft

    def read_local(self, listing_id: str) -> StoredDraft | None:
        raw = self.storage.get_item(draft_key(listing_id))
        if raw is None:
            return None
        try:
            return parse_stored_draft(json.loads(raw))
        except ValueError as e:
            logger.warning(
                "Discarding unreadable local draft",
                extra={"listing_id": listing_id, "error": str(e)},
            )
            return None

    def discard_local(self, listing_id: str) -> None:
        self.storage.remove_item(draft_key(listing_id))

    def listing_ids(self) -> list[str]:
        """Listings that currently have a local slot."""
        return [
            key[len(DRAFT_KEY_PREFIX):]
            for key in self.storage.keys()
            if key.startswith(DRAFT_KEY_PREFIX)
        ]
