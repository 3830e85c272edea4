"""Cookie-tier draft store.

Talks to the same-origin cookie channel (``/api/cookies/*``) so a draft
survives across requests in a form the server can see. Cookies are small,
so a value whose embedded proof would push it past the size threshold has
the proof moved into browser storage first; only a pointer travels in the
cookie.

Every method reports failure through its return value (``False`` or
``None``) and never raises to the caller.
"""

import json
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

import httpx

from app.core.config import settings
from app.core.ids import timestamped_id, utcnow
from app.drafts.browser_storage import BrowserStorage, StorageQuotaError
from app.drafts.payload import InlinePayload, InvalidPayloadError, coerce_payload
from app.drafts.schemas import CorruptDraftError, StoredDraft, parse_stored_draft

logger = logging.getLogger(__name__)

MANIFEST_COOKIE = "draft_review_ids"
DRAFT_COOKIE_PREFIX = "draft_review_"
LARGE_DATA_PREFIX = "large_data"

# Only proofs longer than this are worth evicting from an oversized cookie
LARGE_PROOF_MIN_CHARS = 1000


def draft_cookie_name(listing_id: str) -> str:
    return f"{DRAFT_COOKIE_PREFIX}{listing_id}"


class CookieDraftStore:
    """Client for the cookie channel plus the draft manifest it maintains."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        storage: BrowserStorage,
        size_threshold: int = settings.COOKIE_SIZE_THRESHOLD,
        api_prefix: str = settings.API_PREFIX,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.storage = storage
        self.size_threshold = size_threshold
        self.base_path = f"{api_prefix}/cookies"
        self.clock = clock

    def _evict_large_proof(self, value: dict) -> dict:
        """Move an inline proof into browser storage and leave a pointer behind."""
        raw_proof = value.get("proof")
        legacy = raw_proof is None and isinstance(value.get("proof_file_data"), str)
        if legacy:
            raw_proof = value["proof_file_data"]

        try:
            proof = coerce_payload(raw_proof)
        except InvalidPayloadError:
            return value
        if not isinstance(proof, InlinePayload):
            return value

        data_uri = proof.to_data_uri()
        if len(data_uri) <= LARGE_PROOF_MIN_CHARS:
            return value

        large_data_id = timestamped_id(LARGE_DATA_PREFIX, self.clock())
        self.storage.set_item(large_data_id, data_uri)

        evicted = {k: v for k, v in value.items() if k not in ("proof", "proof_file_data")}
        evicted["proof"] = {"kind": "pointer", "object_key": large_data_id}
        evicted["large_data_id"] = large_data_id
        evicted["has_large_proof"] = True

        logger.info(
            "Evicted large proof from cookie value",
            extra={"large_data_id": large_data_id, "proof_chars": len(data_uri)},
        )
        return evicted

    async def set_cookie(self, name: str, value: Any, expires_days: int = settings.DRAFT_COOKIE_DAYS) -> bool:
        try:
            if isinstance(value, dict) and len(json.dumps(value, default=str)) > self.size_threshold:
                logger.warning(
                    "Cookie value too large, evicting proof payload",
                    extra={"cookie": name},
                )
                value = self._evict_large_proof(value)

            response = await self.client.post(
                f"{self.base_path}/set",
                json={"name": name, "value": value, "expiresDays": expires_days},
            )
            if response.status_code != 200:
                logger.error(
                    "Failed to set cookie",
                    extra={"cookie": name, "status_code": response.status_code},
                )
                return False
            return True

        except (httpx.HTTPError, StorageQuotaError, TypeError, ValueError) as e:
            logger.error("Error setting cookie", extra={"cookie": name, "error": str(e)})
            return False

    async def get_cookie(self, name: str) -> Any:
        try:
            response = await self.client.get(f"{self.base_path}/get", params={"name": name})
            if response.status_code != 200:
                logger.error(
                    "Failed to get cookie",
                    extra={"cookie": name, "status_code": response.status_code},
                )
                return None
            return response.json().get("value")

        except (httpx.HTTPError, ValueError, AttributeError) as e:
            logger.error("Error getting cookie", extra={"cookie": name, "error": str(e)})
            return None

    async def delete_cookie(self, name: str) -> bool:
        try:
            response = await self.client.delete(f"{self.base_path}/delete", params={"name": name})
            if response.status_code != 200:
                logger.error(
                    "Failed to delete cookie",
                    extra={"cookie": name, "status_code": response.status_code},
                )
                return False
            return True

        except httpx.HTTPError as e:
            logger.error("Error deleting cookie", extra={"cookie": name, "error": str(e)})
            return False

    async def tracked_draft_ids(self) -> list[str]:
        """Listing ids in the manifest; a corrupted manifest reads as empty."""
        ids = await self.get_cookie(MANIFEST_COOKIE)
        if not isinstance(ids, list):
            return []
        return [str(i) for i in ids]

    async def track_draft_id(self, listing_id: str) -> bool:
        existing = await self.get_cookie(MANIFEST_COOKIE) or []

        if not isinstance(existing, list):
            logger.warning("Draft manifest corrupted, resetting", extra={"listing_id": listing_id})
            return await self.set_cookie(MANIFEST_COOKIE, [listing_id], settings.MANIFEST_COOKIE_DAYS)
        if listing_id not in existing:
            existing.append(listing_id)
            return await self.set_cookie(MANIFEST_COOKIE, existing, settings.MANIFEST_COOKIE_DAYS)
        return True

    async def remove_draft_id(self, listing_id: str) -> bool:
        existing = await self.get_cookie(MANIFEST_COOKIE) or []

        if not isinstance(existing, list):
            logger.warning("Draft manifest corrupted, resetting", extra={"listing_id": listing_id})
            return await self.set_cookie(MANIFEST_COOKIE, [], settings.MANIFEST_COOKIE_DAYS)
        filtered = [i for i in existing if i != listing_id]
        return await self.set_cookie(MANIFEST_COOKIE, filtered, settings.MANIFEST_COOKIE_DAYS)

    async def save_draft(self, draft: StoredDraft) -> bool:
        """Write ``draft`` to its cookie and add it to the manifest."""
        value = draft.model_dump(mode="json", exclude_none=True)
        if not await self.set_cookie(draft_cookie_name(draft.listing_id), value):
            return False
        return await self.track_draft_id(draft.listing_id)

    async def load_draft(self, listing_id: str) -> StoredDraft | None:
        """Read the cookie draft for ``listing_id``; unreadable drafts read as absent."""
        raw = await self.get_cookie(draft_cookie_name(listing_id))
        if raw is None:
            return None
        try:
            return parse_stored_draft(raw)
        except CorruptDraftError as e:
            logger.warning(
                "Discarding unreadable cookie draft",
                extra={"listing_id": listing_id, "error": str(e)},
            )
            return None

    async def discard_draft(self, listing_id: str) -> bool:
        deleted = await self.delete_cookie(draft_cookie_name(listing_id))
        untracked = await self.remove_draft_id(listing_id)
        return deleted and untracked
