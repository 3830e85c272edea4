"""Database model for published reviews."""

import uuid
from datetime import datetime, timezone
from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Review(SQLModel, table=True):
    """Permanent review record.

    ``owner_id`` duplicates the listing owner so owner dashboards can query
    their reviews without a join. One review per (listing_id, author_id).
    """

    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("listing_id", "author_id", name="uq_reviews_listing_author"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    listing_id: str = Field(index=True)
    owner_id: str | None = Field(default=None, index=True)
    author_id: str = Field(index=True)

    rating: int
    body_text: str
    experience_date: str
    proof_url: str
    proof_kind: str

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
