"""Promotion of browser- and cookie-tier drafts into the durable tier.

Runs every time an authenticated page loads. Each pass walks the draft
manifest one listing at a time:

1. Read the cookie draft (prune the manifest entry if it is gone)
2. Pull an evicted proof back out of browser storage
3. Drop drafts whose listing no longer exists
4. Upload inline proof media to the object store
5. Upsert the durable draft, then retire the cookie copy

A failure on one listing is logged and leaves that cookie in place for the
next pass; the batch itself never raises. Repeated passes converge on one
durable draft per listing.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from opentelemetry.trace import Status, StatusCode
from sqlmodel import Session

from app.core.ids import utcnow
from app.core.tracing import get_tracer, mask_user_id, safe_span_attributes
from app.drafts.cookie_store import CookieDraftStore, draft_cookie_name
from app.drafts.local_store import LocalDraftStore
from app.drafts.payload import (
    HostedPayload,
    InlinePayload,
    InvalidPayloadError,
    PointerPayload,
    coerce_payload,
)
from app.drafts.repository import DraftRepository
from app.drafts.schemas import CorruptDraftError, MigrationReport, StoredDraft, parse_stored_draft
from app.integrations.storage_service import ObjectStore, StorageServiceError
from app.models.drafts import Draft
from app.models.listings import Listing
from app.services.listings import get_listing
from app.services.proofs import ProofValidationError, draft_proof_path, upload_inline_proof

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

CORRUPTION_EVENT = "draft_corruption_detected"


class MigrationCoordinator:
    """Reconciles anonymous drafts into the durable tier for one author."""

    def __init__(
        self,
        cookies: CookieDraftStore,
        session: Session,
        object_store: ObjectStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cookies = cookies
        self.storage = cookies.storage
        self.session = session
        self.drafts = DraftRepository(session)
        self.object_store = object_store
        self.clock = clock

    async def migrate_all_cookie_drafts_to_database(self, author_id: str) -> MigrationReport:
        report = MigrationReport()

        listing_ids = await self.cookies.tracked_draft_ids()
        if not listing_ids:
            return report

        logger.info(
            "Migrating cookie drafts",
            extra={"author_id": mask_user_id(author_id), "tracked": len(listing_ids)},
        )

        for listing_id in listing_ids:
            try:
                await self._migrate_cookie_draft(listing_id, author_id, report)
            except Exception as e:
                # Isolated per listing: the cookie stays for the next pass
                self.session.rollback()
                report.failed.append(listing_id)
                logger.error(
                    "Cookie draft migration failed",
                    extra={"listing_id": listing_id, "error_type": type(e).__name__, "error": str(e)},
                )

        logger.info(
            "Cookie draft migration finished",
            extra={
                "author_id": mask_user_id(author_id),
                "migrated": len(report.migrated),
                "pruned": len(report.pruned),
                "orphaned": len(report.orphaned),
                "corrupted": len(report.corrupted),
                "failed": len(report.failed),
            },
        )
        return report

    async def migrate_all_local_drafts(self, local_store: LocalDraftStore, author_id: str) -> MigrationReport:
        """Same promotion for drafts that only exist in browser storage."""
        report = MigrationReport()
        for listing_id in local_store.listing_ids():
            try:
                stored = local_store.read_local(listing_id)
                if stored is None:
                    local_store.discard_local(listing_id)
                    report.corrupted.append(listing_id)
                    continue

                draft = await self._promote(stored, author_id, report)
                local_store.discard_local(listing_id)
                if draft is None:
                    report.orphaned.append(listing_id)
                else:
                    report.migrated.append(listing_id)
            except Exception as e:
                self.session.rollback()
                report.failed.append(listing_id)
                logger.error(
                    "Local draft migration failed",
                    extra={"listing_id": listing_id, "error_type": type(e).__name__, "error": str(e)},
                )
        return report

    async def _migrate_cookie_draft(self, listing_id: str, author_id: str, report: MigrationReport) -> None:
        with tracer.start_as_current_span("drafts.migrate_cookie_draft") as span:
            span.set_attributes(safe_span_attributes(listing_id=listing_id, author_id=author_id))

            raw = await self.cookies.get_cookie(draft_cookie_name(listing_id))
            if raw is None:
                await self.cookies.remove_draft_id(listing_id)
                report.pruned.append(listing_id)
                span.set_attribute("outcome", "pruned")
                return

            try:
                stored = parse_stored_draft(raw)
            except CorruptDraftError as e:
                logger.warning(
                    "Corrupted cookie draft abandoned",
                    extra={
                        "event": CORRUPTION_EVENT,
                        "tier": "cookie",
                        "listing_id": listing_id,
                        "author_id": mask_user_id(author_id),
                        "error": str(e),
                    },
                )
                await self.cookies.discard_draft(listing_id)
                report.corrupted.append(listing_id)
                span.set_attribute("outcome", "corrupted")
                return

            pointer_key = stored.pointer_key
            try:
                if pointer_key:
                    stored = self._rehydrate(stored, pointer_key)
                draft = await self._promote(stored, author_id, report)
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, type(e).__name__))
                raise
            finally:
                if pointer_key:
                    self.storage.remove_item(pointer_key)

            await self.cookies.discard_draft(listing_id)
            if draft is None:
                report.orphaned.append(listing_id)
                span.set_attribute("outcome", "orphaned")
            else:
                report.migrated.append(listing_id)
                span.set_attribute("outcome", "migrated")
            span.set_status(Status(StatusCode.OK))

    def _rehydrate(self, stored: StoredDraft, pointer_key: str) -> StoredDraft:
        """Swap the pointer for the inline proof it references."""
        data = self.storage.get_item(pointer_key)
        proof = None
        if data is None:
            logger.warning(
                "Evicted proof missing from browser storage",
                extra={"listing_id": stored.listing_id, "large_data_id": pointer_key},
            )
        else:
            try:
                proof = coerce_payload(data)
            except InvalidPayloadError as e:
                logger.warning(
                    "Evicted proof unreadable",
                    extra={"listing_id": stored.listing_id, "large_data_id": pointer_key, "error": str(e)},
                )
        return stored.model_copy(update={"proof": proof, "has_large_proof": False, "large_data_id": None})

    async def _promote(self, stored: StoredDraft, author_id: str, report: MigrationReport) -> Draft | None:
        """Upsert ``stored`` as the author's durable draft.

        Returns None when the listing is gone and the draft cannot be kept.
        """
        listing = get_listing(self.session, stored.listing_id)
        if listing is None:
            logger.warning(
                "Draft references a missing listing, discarding",
                extra={"listing_id": stored.listing_id},
            )
            return None

        existing = self.drafts.get_active(stored.listing_id, author_id)

        fields: dict[str, Any] = {
            "device_id": stored.device_id,
            "rating": stored.rating,
            "body_text": stored.body_text,
            "experience_date": stored.experience_date,
        }
        fields.update(await self._resolve_proof(stored.proof, listing, author_id, report))

        # Never blank out what the durable draft already holds
        fields = {k: v for k, v in fields.items() if v is not None}

        uploaded = fields.get("proof_file_name") if isinstance(stored.proof, InlinePayload) else None
        try:
            draft = self.drafts.upsert(stored.listing_id, author_id, fields, now=self.clock())
        except Exception:
            if uploaded:
                await self._remove_quietly(uploaded)
            raise
        logger.info(
            "Draft promoted to durable tier",
            extra={
                "listing_id": stored.listing_id,
                "author_id": mask_user_id(author_id),
                "updated_existing": existing is not None,
                "has_proof": bool(draft.proof_url),
            },
        )
        return draft

    async def _resolve_proof(
        self,
        proof: InlinePayload | HostedPayload | PointerPayload | None,
        listing: Listing,
        author_id: str,
        report: MigrationReport,
    ) -> dict[str, Any]:
        if isinstance(proof, HostedPayload):
            return {"proof_url": proof.url, "proof_kind": proof.media_kind, "proof_file_name": proof.file_name}
        if not isinstance(proof, InlinePayload):
            return {}

        path = draft_proof_path(listing.owner_id or listing.id, author_id, proof.extension, self.clock())
        try:
            hosted = await upload_inline_proof(self.object_store, proof, path)
        except (StorageServiceError, ProofValidationError, InvalidPayloadError) as e:
            # Keep going without the proof rather than losing the whole draft
            report.proof_upload_failures.append(listing.id)
            logger.error(
                "Proof upload failed during migration",
                extra={"listing_id": listing.id, "path": path, "error": str(e)},
            )
            return {}

        return {"proof_url": hosted.url, "proof_kind": hosted.media_kind, "proof_file_name": hosted.file_name}

    async def _remove_quietly(self, path: str) -> None:
        try:
            await self.object_store.remove([path])
        except StorageServiceError as e:
            logger.warning("Failed to remove proof object", extra={"path": path, "error": e.message})
