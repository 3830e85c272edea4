"""End-to-end draft lifecycle: anonymous draft, sign-in migration, publish."""

import httpx
import pytest
from sqlmodel import Session

from app.drafts.browser_storage import MemoryBrowserStorage
from app.drafts.cleanup import sweep_large_objects
from app.drafts.cookie_store import CookieDraftStore, draft_cookie_name
from app.drafts.local_store import LocalDraftStore
from app.drafts.migration import MigrationCoordinator
from app.drafts.repository import DraftRepository
from app.drafts.schemas import parse_stored_draft
from app.services.reviews import ReviewService

PROOF_BYTES = 2 * 1024 * 1024


@pytest.mark.integration
@pytest.mark.asyncio
async def test_large_proof_draft_survives_sign_in_and_publishes(
    client,
    asgi_client: httpx.AsyncClient,
    db_session: Session,
    object_store,
    make_listing,
    verified_customer,
    png_data_uri,
):
    """A 2MB image proof drafted while signed out ends up on the published review."""
    make_listing("L1")
    storage = MemoryBrowserStorage()
    local = LocalDraftStore(storage)
    cookies = CookieDraftStore(asgi_client, storage)

    # Signed out: the form autosaves to browser storage, then to the cookie tier
    form = {"rating": 5, "body_text": "Fixed my laptop in an hour", "experience_date": "2024-03-15"}
    local.save_local("L1", form)
    first = local.read_local("L1")
    assert (first.rating, first.body_text, first.experience_date) == (5, form["body_text"], "2024-03-15")
    assert first.device_id.startswith("device_")

    draft = local.save_local("L1", {**form, "proof": png_data_uri(PROOF_BYTES)})
    assert draft.device_id == first.device_id
    assert await cookies.save_draft(draft) is True

    cookie_value = parse_stored_draft(await cookies.get_cookie(draft_cookie_name("L1")))
    assert cookie_value.has_large_proof is True
    assert storage.get_item(cookie_value.large_data_id) is not None

    # Signed in: anonymous drafts move to the durable tier
    coordinator = MigrationCoordinator(cookies, db_session, object_store)
    report = await coordinator.migrate_all_cookie_drafts_to_database(verified_customer.user_id)
    assert report.migrated == ["L1"]
    assert storage.get_item(cookie_value.large_data_id) is None
    assert await cookies.tracked_draft_ids() == []

    durable = DraftRepository(db_session).get_active("L1", verified_customer.user_id)
    assert durable.rating == 5
    assert durable.proof_kind == "image"
    draft_object, _ = object_store.objects[durable.proof_file_name]
    assert len(draft_object) == PROOF_BYTES
    proof_url = durable.proof_url

    listed = (await asgi_client.get("/api/drafts")).json()
    assert [d["listing_id"] for d in listed] == ["L1"]

    # Publish the saved draft
    review = await ReviewService(db_session, object_store).publish(
        "L1", verified_customer, local_store=local
    )
    assert review.proof_url == proof_url
    assert local.read_local("L1") is None
    assert DraftRepository(db_session).get_active("L1", verified_customer.user_id) is None

    reviews = (await asgi_client.get("/api/listings/L1/reviews")).json()
    assert len(reviews) == 1
    assert reviews[0]["body_text"] == "Fixed my laptop in an hour"

    assert sweep_large_objects(storage) == 0
