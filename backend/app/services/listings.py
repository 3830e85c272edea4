"""Listing lookup, directory search and rating aggregates."""

import logging

from sqlalchemy import func, or_
from sqlmodel import Session, col, select

from app.models.listings import Listing
from app.models.reviews import Review

logger = logging.getLogger(__name__)


def get_listing(session: Session, listing_id: str) -> Listing | None:
    return session.get(Listing, listing_id)


def search_listings(
    session: Session,
    q: str | None = None,
    category: str | None = None,
    city: str | None = None,
    verified_only: bool = False,
    limit: int = 20,
    offset: int = 0,
) -> list[Listing]:
    """Case-insensitive directory search over name, description and category."""
    statement = select(Listing)

    if q:
        pattern = f"%{q.strip().lower()}%"
        statement = statement.where(
            or_(
                func.lower(Listing.name).like(pattern),
                func.lower(func.coalesce(Listing.description, "")).like(pattern),
                func.lower(func.coalesce(Listing.category, "")).like(pattern),
            )
        )
    if category:
        statement = statement.where(func.lower(Listing.category) == category.lower())
    if city:
        statement = statement.where(func.lower(Listing.city) == city.lower())
    if verified_only:
        statement = statement.where(Listing.verification_status == "verified")

    statement = statement.order_by(col(Listing.our_rating).desc(), Listing.name).offset(offset).limit(limit)
    return list(session.exec(statement).all())


def list_reviews(session: Session, listing_id: str) -> list[Review]:
    statement = (
        select(Review)
        .where(Review.listing_id == listing_id)
        .order_by(col(Review.created_at).desc())
    )
    return list(session.exec(statement).all())


def refresh_listing_rating(session: Session, listing: Listing) -> None:
    """Recompute ``our_rating``/``our_reviews_count`` from stored reviews.

    Adds the listing to the session; the caller commits.
    """
    count, average = session.exec(
        select(func.count(Review.id), func.avg(Review.rating)).where(Review.listing_id == listing.id)
    ).one()
    listing.our_reviews_count = count or 0
    listing.our_rating = round(float(average or 0.0), 2)
    session.add(listing)
