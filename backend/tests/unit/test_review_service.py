"""Unit tests for review publishing and durable draft management."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError
from sqlmodel import Session, select

from app.core.auth import AuthenticatedUser
from app.drafts.browser_storage import MemoryBrowserStorage
from app.drafts.local_store import LocalDraftStore
from app.drafts.repository import DraftRepository
from app.models.listings import Listing
from app.models.reviews import Review
from app.services.reviews import (
    AlreadyReviewedError,
    BusinessAccountError,
    DraftNotFoundError,
    DraftValidationError,
    ListingNotFoundError,
    ListingNotVerifiedError,
    NotAuthenticatedError,
    OwnListingError,
    ProofUploadError,
    ReviewService,
    ReviewSubmission,
    UnverifiedAuthorError,
)

NOW = datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def service(db_session: Session, object_store) -> ReviewService:
    return ReviewService(db_session, object_store, clock=lambda: NOW)


@pytest.fixture
def complete_submission(png_data_uri):
    def _make(**overrides) -> ReviewSubmission:
        values = {
            "rating": 4,
            "body_text": "  Friendly and fast  ",
            "experience_date": "2024-04-20",
            "proof": png_data_uri(128),
        }
        values.update(overrides)
        return ReviewSubmission(**values)

    return _make


def _reviews(session: Session) -> list[Review]:
    return list(session.exec(select(Review)).all())


@pytest.mark.asyncio
class TestPublishPreconditions:
    """Failed checks must leave no upload and no review behind."""

    @pytest.mark.parametrize("missing", ["rating", "body_text", "experience_date", "proof"])
    async def test_missing_field(
        self, service, make_listing, verified_customer, complete_submission, object_store, db_session, missing
    ):
        make_listing("L1")
        submission = complete_submission(**{missing: None})

        with pytest.raises(DraftValidationError) as exc_info:
            await service.publish("L1", verified_customer, submission)

        assert exc_info.value.missing == [missing]
        assert exc_info.value.status_code == 400
        assert object_store.objects == {}
        assert _reviews(db_session) == []

    async def test_whitespace_body_counts_as_missing(self, service, make_listing, verified_customer, complete_submission):
        make_listing("L1")
        with pytest.raises(DraftValidationError):
            await service.publish("L1", verified_customer, complete_submission(body_text="   "))

    async def test_own_listing(self, service, make_listing, verified_customer, complete_submission, object_store, db_session):
        make_listing("L1", owner_id=verified_customer.user_id)

        with pytest.raises(OwnListingError):
            await service.publish("L1", verified_customer, complete_submission())

        assert object_store.objects == {}
        assert _reviews(db_session) == []

    async def test_signed_out(self, service, make_listing, complete_submission):
        make_listing("L1")
        with pytest.raises(NotAuthenticatedError):
            await service.publish("L1", None, complete_submission())

    async def test_business_account(self, service, make_listing, verified_customer, complete_submission):
        make_listing("L1")
        business = verified_customer.model_copy(update={"user_type": "business"})
        with pytest.raises(BusinessAccountError):
            await service.publish("L1", business, complete_submission())

    async def test_unverified_author(self, service, make_listing, verified_customer, complete_submission):
        make_listing("L1")
        unverified = verified_customer.model_copy(update={"is_verified": False})
        with pytest.raises(UnverifiedAuthorError):
            await service.publish("L1", unverified, complete_submission())

    async def test_unknown_listing(self, service, verified_customer, complete_submission):
        with pytest.raises(ListingNotFoundError):
            await service.publish("nope", verified_customer, complete_submission())

    async def test_unverified_listing(self, service, make_listing, verified_customer, complete_submission, object_store):
        make_listing("L1", verification_status="pending")
        with pytest.raises(ListingNotVerifiedError) as exc_info:
            await service.publish("L1", verified_customer, complete_submission())
        assert exc_info.value.status_code == 409
        assert object_store.objects == {}

    async def test_already_reviewed(self, service, make_listing, verified_customer, complete_submission, object_store):
        make_listing("L1")
        await service.publish("L1", verified_customer, complete_submission())
        uploads = dict(object_store.objects)

        with pytest.raises(AlreadyReviewedError):
            await service.publish("L1", verified_customer, complete_submission(rating=1))

        assert object_store.objects == uploads

    async def test_upload_failure(self, service, make_listing, verified_customer, complete_submission, object_store, db_session):
        make_listing("L1")
        object_store.fail_uploads = True

        with pytest.raises(ProofUploadError) as exc_info:
            await service.publish("L1", verified_customer, complete_submission())

        assert exc_info.value.status_code == 502
        assert _reviews(db_session) == []

    async def test_oversized_proof_is_a_validation_error(
        self, service, make_listing, verified_customer, complete_submission, png_data_uri, object_store
    ):
        make_listing("L1")
        too_big = png_data_uri(10 * 1024 * 1024 + 1)

        with pytest.raises(DraftValidationError) as exc_info:
            await service.publish("L1", verified_customer, complete_submission(proof=too_big))

        assert exc_info.value.missing == ["proof"]
        assert object_store.objects == {}


class TestReviewSubmission:
    def test_untyped_proof_is_rejected(self):
        with pytest.raises(ValidationError):
            ReviewSubmission(rating=5, proof="iVBORw0KGgo=")

    def test_hosted_url_is_accepted(self):
        submission = ReviewSubmission(proof="https://cdn.example.com/clip.mp4")
        assert submission.proof.media_kind == "video"
        assert submission.missing_fields() == ["rating", "body_text", "experience_date"]


@pytest.mark.asyncio
class TestPublish:
    async def test_publish_submission(self, service, make_listing, verified_customer, complete_submission, object_store, db_session):
        make_listing("L1")

        review = await service.publish("L1", verified_customer, complete_submission())

        assert review.rating == 4
        assert review.body_text == "Friendly and fast"
        assert review.owner_id == "owner-1"
        assert review.proof_kind == "image"
        expected_path = f"reviews/owner-1/{verified_customer.user_id}-{int(NOW.timestamp() * 1000)}.png"
        assert expected_path in object_store.objects
        assert review.proof_url.endswith(expected_path)

        listing = db_session.get(Listing, "L1")
        assert listing.our_reviews_count == 1
        assert listing.our_rating == 4.0

    async def test_publish_from_draft_removes_draft_and_local_slot(
        self, service, make_listing, verified_customer, db_session, object_store
    ):
        make_listing("L1")
        DraftRepository(db_session).upsert("L1", verified_customer.user_id, {
            "rating": 5,
            "body_text": "Saved earlier",
            "experience_date": "2024-04-01",
            "proof_url": "https://cdn.example.com/p.png",
            "proof_kind": "image",
            "proof_file_name": "draftReviews/owner-1/p.png",
        })
        local = LocalDraftStore(MemoryBrowserStorage())
        local.save_local("L1", {"rating": 5})

        review = await service.publish("L1", verified_customer, local_store=local)

        assert review.proof_url == "https://cdn.example.com/p.png"
        assert object_store.objects == {}
        assert object_store.removed == []
        assert DraftRepository(db_session).get_active("L1", verified_customer.user_id) is None
        assert local.read_local("L1") is None

    async def test_fresh_submission_removes_superseded_draft_proof(
        self, service, make_listing, verified_customer, complete_submission, db_session, object_store, png_data_uri
    ):
        make_listing("L1")
        draft = await service.save_progress(
            "L1", verified_customer, ReviewSubmission(rating=2, proof=png_data_uri(64))
        )
        draft_proof = draft.proof_file_name

        review = await service.publish("L1", verified_customer, complete_submission())

        assert object_store.removed == [draft_proof]
        assert draft_proof not in object_store.objects
        assert review.proof_url.endswith(".png")
        assert DraftRepository(db_session).get_active("L1", verified_customer.user_id) is None

    async def test_publish_without_draft(self, service, make_listing, verified_customer):
        make_listing("L1")
        with pytest.raises(DraftNotFoundError):
            await service.publish("L1", verified_customer)

    async def test_incomplete_draft(self, service, make_listing, verified_customer, db_session):
        make_listing("L1")
        DraftRepository(db_session).upsert("L1", verified_customer.user_id, {"rating": 3})

        with pytest.raises(DraftValidationError) as exc_info:
            await service.publish("L1", verified_customer)

        assert exc_info.value.missing == ["body_text", "experience_date", "proof"]

    async def test_rating_aggregate_across_authors(self, service, make_listing, verified_customer, complete_submission, db_session):
        make_listing("L1")
        other = AuthenticatedUser(user_id="user-999", email="b@example.com", is_verified=True)

        await service.publish("L1", verified_customer, complete_submission(rating=5))
        await service.publish("L1", other, complete_submission(rating=2))

        listing = db_session.get(Listing, "L1")
        assert listing.our_reviews_count == 2
        assert listing.our_rating == 3.5


@pytest.mark.asyncio
class TestDrafts:
    async def test_save_progress_uploads_proof(self, service, make_listing, verified_customer, png_data_uri, object_store):
        make_listing("L1")

        draft = await service.save_progress(
            "L1", verified_customer, ReviewSubmission(rating=2, proof=png_data_uri(64))
        )

        assert draft.rating == 2
        assert draft.proof_file_name.startswith(f"draftReviews/owner-1/draft_{verified_customer.user_id}_")
        assert draft.proof_file_name in object_store.objects

    async def test_save_progress_keeps_previous_fields(self, service, make_listing, verified_customer):
        make_listing("L1")
        await service.save_progress("L1", verified_customer, ReviewSubmission(body_text="first"))
        draft = await service.save_progress("L1", verified_customer, ReviewSubmission(rating=3))

        assert draft.body_text == "first"
        assert draft.rating == 3

    async def test_save_progress_requires_sign_in(self, service, make_listing):
        make_listing("L1")
        with pytest.raises(NotAuthenticatedError):
            await service.save_progress("L1", None, ReviewSubmission(rating=1))

    async def test_discard_survives_storage_failure(self, service, make_listing, verified_customer, object_store, db_session):
        make_listing("L1")
        draft = DraftRepository(db_session).upsert("L1", verified_customer.user_id, {
            "rating": 1,
            "proof_file_name": "draftReviews/owner-1/x.png",
        })
        object_store.fail_removes = True
        local = LocalDraftStore(MemoryBrowserStorage())
        local.save_local("L1", {"rating": 1})

        await service.discard(draft.id, verified_customer.user_id, local_store=local)

        assert service.get_draft("L1", verified_customer.user_id) is None
        assert local.read_local("L1") is None

    async def test_discard_other_authors_draft(self, service, make_listing, verified_customer, db_session):
        make_listing("L1")
        draft = DraftRepository(db_session).upsert("L1", "someone-else", {"rating": 1})

        with pytest.raises(DraftNotFoundError):
            await service.discard(draft.id, verified_customer.user_id)
