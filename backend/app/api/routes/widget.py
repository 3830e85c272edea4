"""Public read-only feed for the embeddable review widget."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlmodel import Session

from app.api.routes.listings import ListingResponse, ReviewResponse
from app.core.db import get_session
from app.services.listings import get_listing, list_reviews, search_listings

widget_router = APIRouter(prefix="/widget", tags=["widget"])


@widget_router.get("/businesses", response_model=list[ListingResponse])
async def widget_businesses(
    limit: int = Query(50, ge=1, le=100),
    session: Session = Depends(get_session),
) -> list[ListingResponse]:
    """Verified businesses only; unverified listings cannot carry reviews."""
    listings = search_listings(session, verified_only=True, limit=limit)
    return [ListingResponse.from_model(listing) for listing in listings]


@widget_router.get("/business/{listing_id}/reviews", response_model=list[ReviewResponse])
async def widget_reviews(listing_id: str, session: Session = Depends(get_session)) -> list[ReviewResponse]:
    listing = get_listing(session, listing_id)
    if listing is None or listing.verification_status != "verified":
        raise HTTPException(status_code=404, detail="Business not found")
    return [ReviewResponse.from_model(r) for r in list_reviews(session, listing_id)]
