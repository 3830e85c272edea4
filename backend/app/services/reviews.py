"""Review publishing and durable draft management.

``publish`` turns a saved draft (or a form submitted in one go) into a
permanent review. All checks run before any upload, and the review insert
is the last write, so a failed publish leaves no review behind.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.core.auth import AuthenticatedUser
from app.core.ids import utcnow
from app.core.tracing import mask_user_id
from app.drafts.local_store import LocalDraftStore
from app.drafts.payload import (
    DraftPayload,
    HostedPayload,
    InlinePayload,
    InvalidPayloadError,
    coerce_payload,
)
from app.drafts.repository import DraftRepository
from app.integrations.storage_service import ObjectStore, StorageServiceError
from app.models.drafts import Draft
from app.models.listings import Listing
from app.models.reviews import Review
from app.services.listings import get_listing, refresh_listing_rating
from app.services.proofs import (
    ProofValidationError,
    draft_proof_path,
    review_proof_path,
    upload_inline_proof,
)

logger = logging.getLogger(__name__)


class ReviewServiceError(Exception):
    """Base exception for review and draft workflow errors."""

    def __init__(self, message: str, status_code: int = 500, error_code: str = "review_service_error"):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(self.message)


class DraftValidationError(ReviewServiceError):
    """Raised when required review fields are missing or invalid."""

    def __init__(self, message: str = "Please fill in all required fields before submitting.", missing: list[str] | None = None):
        self.missing = missing or []
        super().__init__(message=message, status_code=400, error_code="validation_failed")


class NotAuthenticatedError(ReviewServiceError):
    def __init__(self, message: str = "You need to be logged in to add a review."):
        super().__init__(message=message, status_code=401, error_code="login_required")


class BusinessAccountError(ReviewServiceError):
    def __init__(self, message: str = "Business accounts cannot write reviews."):
        super().__init__(message=message, status_code=403, error_code="business_account")


class UnverifiedAuthorError(ReviewServiceError):
    def __init__(self, message: str = "Only verified customers can publish reviews."):
        super().__init__(message=message, status_code=403, error_code="unverified_author")


class OwnListingError(ReviewServiceError):
    def __init__(self, message: str = "You cannot review your own business."):
        super().__init__(message=message, status_code=403, error_code="own_listing")


class ListingNotFoundError(ReviewServiceError):
    def __init__(self, message: str = "Business not found"):
        super().__init__(message=message, status_code=404, error_code="listing_not_found")


class ListingNotVerifiedError(ReviewServiceError):
    def __init__(self, message: str = "Reviews will be enabled once this business is verified."):
        super().__init__(message=message, status_code=409, error_code="listing_not_verified")


class AlreadyReviewedError(ReviewServiceError):
    def __init__(self, message: str = "You already reviewed this business. Only one review per business is allowed."):
        super().__init__(message=message, status_code=409, error_code="already_reviewed")


class DraftNotFoundError(ReviewServiceError):
    def __init__(self, message: str = "Draft not found"):
        super().__init__(message=message, status_code=404, error_code="draft_not_found")


class ProofUploadError(ReviewServiceError):
    def __init__(self, message: str = "Failed to upload proof. Please try again."):
        super().__init__(message=message, status_code=502, error_code="proof_upload_failed")


class ReviewSubmission(BaseModel):
    """Review content from a form or a saved draft."""
    rating: int | None = Field(None, ge=1, le=5)
    body_text: str | None = None
    experience_date: str | None = None
    proof: DraftPayload | None = None

    @field_validator("proof", mode="before")
    @classmethod
    def require_typed_proof(cls, value: Any) -> Any:
        return coerce_payload(value, allow_untyped=False)

    def missing_fields(self) -> list[str]:
        missing = []
        if not self.rating:
            missing.append("rating")
        if not (self.body_text and self.body_text.strip()):
            missing.append("body_text")
        if not self.experience_date:
            missing.append("experience_date")
        if self.proof is None:
            missing.append("proof")
        return missing

    @classmethod
    def from_draft(cls, draft: Draft) -> "ReviewSubmission":
        proof = None
        if draft.proof_url:
            proof = HostedPayload(
                url=draft.proof_url,
                media_kind=draft.proof_kind or "image",
                file_name=draft.proof_file_name,
            )
        return cls(
            rating=draft.rating,
            body_text=draft.body_text,
            experience_date=draft.experience_date,
            proof=proof,
        )


def _check_author(author: AuthenticatedUser | None) -> AuthenticatedUser:
    if author is None:
        raise NotAuthenticatedError()
    if author.user_type == "business":
        raise BusinessAccountError()
    if not author.is_verified:
        raise UnverifiedAuthorError()
    return author


class ReviewService:
    """Publishes reviews and manages the author's durable drafts."""

    def __init__(self, session: Session, object_store: ObjectStore, clock: Callable[[], datetime] = utcnow):
        self.session = session
        self.object_store = object_store
        self.drafts = DraftRepository(session)
        self.clock = clock

    def _get_reviewable_listing(self, listing_id: str, author: AuthenticatedUser) -> Listing:
        listing = get_listing(self.session, listing_id)
        if listing is None:
            raise ListingNotFoundError()
        if listing.verification_status != "verified":
            raise ListingNotVerifiedError()
        if listing.owner_id and listing.owner_id == author.user_id:
            raise OwnListingError()
        return listing

    def has_reviewed(self, listing_id: str, author_id: str) -> bool:
        statement = select(Review.id).where(Review.listing_id == listing_id, Review.author_id == author_id)
        return self.session.exec(statement).first() is not None

    async def _host_proof(self, proof: Any, path: str) -> tuple[HostedPayload, bool]:
        """Return the hosted proof and whether it was uploaded by this call."""
        if isinstance(proof, HostedPayload):
            return proof, False
        if not isinstance(proof, InlinePayload):
            raise DraftValidationError("Please attach your proof again before submitting.", missing=["proof"])
        try:
            return await upload_inline_proof(self.object_store, proof, path), True
        except ProofValidationError as e:
            raise DraftValidationError(str(e), missing=["proof"])
        except (StorageServiceError, InvalidPayloadError) as e:
            logger.error("Proof upload failed", extra={"path": path, "error": str(e)})
            raise ProofUploadError()

    async def _remove_quietly(self, path: str | None) -> None:
        if not path:
            return
        try:
            await self.object_store.remove([path])
        except StorageServiceError as e:
            logger.warning("Failed to remove proof object", extra={"path": path, "error": e.message})

    async def publish(
        self,
        listing_id: str,
        author: AuthenticatedUser | None,
        submission: ReviewSubmission | None = None,
        local_store: LocalDraftStore | None = None,
    ) -> Review:
        """Publish a review for ``listing_id``.

        With ``submission`` the form content is published directly; without
        it the author's active durable draft is used.

        Raises:
            DraftValidationError: Missing rating, text, date or proof
            NotAuthenticatedError, BusinessAccountError, UnverifiedAuthorError
            ListingNotFoundError, ListingNotVerifiedError, OwnListingError
            AlreadyReviewedError: The author already reviewed this listing
            ProofUploadError: The proof could not be uploaded
            ReviewServiceError: The insert failed
        """
        if submission is not None:
            missing = submission.missing_fields()
            if missing:
                raise DraftValidationError(missing=missing)

        author = _check_author(author)

        draft = self.drafts.get_active(listing_id, author.user_id)
        if submission is None:
            if draft is None:
                raise DraftNotFoundError()
            submission = ReviewSubmission.from_draft(draft)
            missing = submission.missing_fields()
            if missing:
                raise DraftValidationError(missing=missing)

        listing = self._get_reviewable_listing(listing_id, author)
        if self.has_reviewed(listing_id, author.user_id):
            raise AlreadyReviewedError()

        now = self.clock()
        extension = submission.proof.extension if isinstance(submission.proof, InlinePayload) else ""
        path = review_proof_path(listing.owner_id or listing.id, author.user_id, extension, now)
        hosted, uploaded = await self._host_proof(submission.proof, path)

        review = Review(
            listing_id=listing.id,
            owner_id=listing.owner_id,
            author_id=author.user_id,
            rating=submission.rating,
            body_text=submission.body_text.strip(),
            experience_date=submission.experience_date,
            proof_url=hosted.url,
            proof_kind=hosted.media_kind,
            created_at=now,
        )
        superseded = None
        if draft is not None and draft.proof_file_name != hosted.file_name:
            superseded = draft.proof_file_name

        self.session.add(review)
        if draft is not None:
            self.session.delete(draft)
        try:
            self.session.flush()
            refresh_listing_rating(self.session, listing)
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            if uploaded:
                await self._remove_quietly(hosted.file_name)
            raise AlreadyReviewedError()
        except SQLAlchemyError as e:
            self.session.rollback()
            if uploaded:
                await self._remove_quietly(hosted.file_name)
            logger.error("Review insert failed", extra={"listing_id": listing_id, "error": str(e)})
            raise ReviewServiceError("Failed to submit review. Please try again.")

        self.session.refresh(review)
        await self._remove_quietly(superseded)
        if local_store is not None:
            local_store.discard_local(listing_id)

        logger.info(
            "Review published",
            extra={
                "listing_id": listing_id,
                "author_id": mask_user_id(author.user_id),
                "from_draft": draft is not None,
            },
        )
        return review

    async def save_progress(
        self,
        listing_id: str,
        author: AuthenticatedUser | None,
        submission: ReviewSubmission,
    ) -> Draft:
        """Store incomplete review content as the author's durable draft."""
        if author is None:
            raise NotAuthenticatedError()
        listing = get_listing(self.session, listing_id)
        if listing is None:
            raise ListingNotFoundError()

        fields: dict[str, Any] = {
            "rating": submission.rating,
            "body_text": submission.body_text,
            "experience_date": submission.experience_date,
        }

        existing = self.drafts.get_active(listing_id, author.user_id)
        if submission.proof is not None:
            extension = submission.proof.extension if isinstance(submission.proof, InlinePayload) else ""
            path = draft_proof_path(listing.owner_id or listing.id, author.user_id, extension, self.clock())
            hosted, uploaded = await self._host_proof(submission.proof, path)
            fields.update(proof_url=hosted.url, proof_kind=hosted.media_kind, proof_file_name=hosted.file_name)
            if uploaded and existing is not None and existing.proof_file_name != hosted.file_name:
                await self._remove_quietly(existing.proof_file_name)

        fields = {k: v for k, v in fields.items() if v is not None}
        return self.drafts.upsert(listing_id, author.user_id, fields, now=self.clock())

    def get_draft(self, listing_id: str, author_id: str) -> Draft | None:
        return self.drafts.get_active(listing_id, author_id)

    async def discard(
        self,
        draft_id: uuid.UUID,
        author_id: str,
        local_store: LocalDraftStore | None = None,
    ) -> None:
        """Delete a draft, its uploaded proof (best effort) and the local slot."""
        draft = self.drafts.get(draft_id)
        if draft is None or draft.author_id != author_id:
            raise DraftNotFoundError()

        await self._remove_quietly(draft.proof_file_name)
        listing_id = draft.listing_id
        self.drafts.delete(draft)

        if local_store is not None:
            local_store.discard_local(listing_id)

        logger.info(
            "Draft discarded",
            extra={"listing_id": listing_id, "author_id": mask_user_id(author_id)},
        )
