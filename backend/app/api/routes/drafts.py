"""Durable-tier draft endpoints for signed-in reviewers."""

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel
from sqlmodel import Session

from app.core.auth import AuthenticatedUser, require_user
from app.core.db import get_session
from app.core.tracing import mask_user_id
from app.drafts.cleanup import sweep_expired_drafts
from app.drafts.repository import DraftRepository
from app.integrations.storage_service import ObjectStore, get_object_store
from app.models.drafts import Draft
from app.services.reviews import ReviewService, ReviewServiceError, ReviewSubmission

logger = logging.getLogger(__name__)

drafts_router = APIRouter(prefix="/drafts", tags=["drafts"])


class DraftResponse(BaseModel):
    """Response model for a durable draft."""
    id: uuid.UUID
    listing_id: str
    rating: int | None = None
    body_text: str | None = None
    experience_date: str | None = None
    proof_url: str | None = None
    proof_kind: str | None = None
    status: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, draft: Draft) -> "DraftResponse":
        return cls.model_validate(draft, from_attributes=True)


class VisitResponse(BaseModel):
    expired_drafts_deleted: int


def get_review_service(
    session: Session = Depends(get_session),
    object_store: ObjectStore = Depends(get_object_store),
) -> ReviewService:
    return ReviewService(session, object_store)


@drafts_router.post("/visit", response_model=VisitResponse)
async def record_visit(
    user: AuthenticatedUser = Depends(require_user),
    session: Session = Depends(get_session),
) -> VisitResponse:
    """
    Housekeeping for an authenticated page load.

    Deletes the caller's drafts that have not been touched within the
    retention window.
    """
    deleted = sweep_expired_drafts(DraftRepository(session), user.user_id)
    return VisitResponse(expired_drafts_deleted=deleted)


@drafts_router.get("", response_model=list[DraftResponse])
async def list_drafts(
    user: AuthenticatedUser = Depends(require_user),
    session: Session = Depends(get_session),
) -> list[DraftResponse]:
    drafts = DraftRepository(session).list_active(user.user_id)
    return [DraftResponse.from_model(d) for d in drafts]


@drafts_router.get("/{listing_id}", response_model=DraftResponse)
async def get_draft(
    listing_id: str,
    user: AuthenticatedUser = Depends(require_user),
    service: ReviewService = Depends(get_review_service),
) -> DraftResponse:
    draft = service.get_draft(listing_id, user.user_id)
    if draft is None:
        raise HTTPException(status_code=404, detail="No draft for this business")
    return DraftResponse.from_model(draft)


@drafts_router.put("/{listing_id}", response_model=DraftResponse)
async def save_draft(
    listing_id: str,
    submission: ReviewSubmission,
    user: AuthenticatedUser = Depends(require_user),
    service: ReviewService = Depends(get_review_service),
) -> DraftResponse:
    """
    Save review progress. Inline proof media is uploaded right away so the
    stored draft only references hosted media.
    """
    try:
        draft = await service.save_progress(listing_id, user, submission)
    except ReviewServiceError as e:
        logger.warning(
            "Draft save rejected",
            extra={"listing_id": listing_id, "author_id": mask_user_id(user.user_id), "error_code": e.error_code},
        )
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return DraftResponse.from_model(draft)


@drafts_router.delete("/{draft_id}", status_code=204)
async def discard_draft(
    draft_id: uuid.UUID,
    user: AuthenticatedUser = Depends(require_user),
    service: ReviewService = Depends(get_review_service),
) -> Response:
    try:
        await service.discard(draft_id, user.user_id)
    except ReviewServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return Response(status_code=204)
