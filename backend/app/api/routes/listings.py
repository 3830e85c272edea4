"""Business directory and review endpoints."""

import logging
import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from app.api.routes.drafts import get_review_service
from app.core.auth import AuthenticatedUser, get_current_user
from app.core.db import get_session
from app.core.tracing import mask_user_id
from app.models.listings import Listing
from app.models.reviews import Review
from app.services.listings import get_listing, list_reviews, search_listings
from app.services.reviews import ReviewService, ReviewServiceError, ReviewSubmission

logger = logging.getLogger(__name__)

listings_router = APIRouter(prefix="/listings", tags=["listings"])


class ListingResponse(BaseModel):
    """Response model for a directory entry."""
    id: str
    name: str
    description: str | None = None
    category: str | None = None
    address: str | None = None
    city: str | None = None
    country: str | None = None
    phone: str | None = None
    website: str | None = None
    profile_url: str | None = None
    verification_status: str
    our_rating: float
    our_reviews_count: int

    @classmethod
    def from_model(cls, listing: Listing) -> "ListingResponse":
        return cls.model_validate(listing, from_attributes=True)


class ReviewResponse(BaseModel):
    """Response model for a published review."""
    id: uuid.UUID
    listing_id: str
    author_id: str
    rating: int
    body_text: str
    experience_date: str
    proof_url: str
    proof_kind: str
    created_at: datetime

    @classmethod
    def from_model(cls, review: Review) -> "ReviewResponse":
        return cls.model_validate(review, from_attributes=True)


@listings_router.get("", response_model=list[ListingResponse])
async def search_directory(
    q: str | None = Query(None, max_length=200),
    category: str | None = None,
    city: str | None = None,
    verified_only: bool = False,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
) -> list[ListingResponse]:
    listings = search_listings(
        session, q=q, category=category, city=city,
        verified_only=verified_only, limit=limit, offset=offset,
    )
    return [ListingResponse.from_model(listing) for listing in listings]


@listings_router.get("/{listing_id}", response_model=ListingResponse)
async def get_listing_detail(listing_id: str, session: Session = Depends(get_session)) -> ListingResponse:
    listing = get_listing(session, listing_id)
    if listing is None:
        raise HTTPException(status_code=404, detail="Business not found")
    return ListingResponse.from_model(listing)


@listings_router.get("/{listing_id}/reviews", response_model=list[ReviewResponse])
async def get_listing_reviews(listing_id: str, session: Session = Depends(get_session)) -> list[ReviewResponse]:
    if get_listing(session, listing_id) is None:
        raise HTTPException(status_code=404, detail="Business not found")
    return [ReviewResponse.from_model(r) for r in list_reviews(session, listing_id)]


@listings_router.post("/{listing_id}/reviews", response_model=ReviewResponse, status_code=201)
async def publish_review(
    listing_id: str,
    submission: ReviewSubmission | None = None,
    user: AuthenticatedUser | None = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
) -> ReviewResponse:
    """
    Publish a review.

    Send the full form to publish directly, or an empty body to publish the
    caller's saved draft for this business.
    """
    try:
        review = await service.publish(listing_id, user, submission)
    except ReviewServiceError as e:
        logger.info(
            "Review publish rejected",
            extra={
                "listing_id": listing_id,
                "author_id": mask_user_id(user.user_id if user else None),
                "error_code": e.error_code,
            },
        )
        raise HTTPException(status_code=e.status_code, detail=e.message)

    return ReviewResponse.from_model(review)
