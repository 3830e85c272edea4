"""Database model for reviewable business listings."""

import uuid
from datetime import datetime, timezone
from sqlmodel import Field, SQLModel, Column, String


class Listing(SQLModel, table=True):
    """A business in the directory.

    ``owner_id`` is the identity-provider id of the business account that
    claimed the listing; scraped directory entries start unclaimed.
    Reviews are only accepted once ``verification_status`` is ``verified``.
    """

    __tablename__ = "listings"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    owner_id: str | None = Field(default=None, index=True)

    name: str = Field(index=True)
    description: str | None = None
    category: str | None = Field(default=None, index=True)
    address: str | None = None
    city: str | None = Field(default=None, index=True)
    country: str | None = None
    phone: str | None = None
    website: str | None = None
    profile_url: str | None = None

    verification_status: str = Field(
        default="pending", sa_column=Column(String, index=True, nullable=False)
    )

    # Aggregates refreshed whenever a review is published
    our_rating: float = Field(default=0.0)
    our_reviews_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        """SQLModel configuration."""
        json_schema_extra = {
            "example": {
                "name": "Karachi Coffee Roasters",
                "category": "restaurants",
                "city": "Karachi",
                "country": "Pakistan",
                "verification_status": "verified",
            }
        }
