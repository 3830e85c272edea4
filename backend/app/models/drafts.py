"""Database model for durable-tier review drafts."""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel, Column, String


class Draft(SQLModel, table=True):
    """An unpublished review owned by an authenticated author.

    Browser and cookie tiers hold anonymous drafts; once the author signs in
    those are migrated here. Only one ``status == "draft"`` row may exist per
    (listing_id, author_id); the partial unique index below enforces it and
    the repository treats a violation as the conflict signal.
    """

    __tablename__ = "drafts"
    __table_args__ = (
        Index(
            "uq_drafts_active_listing_author",
            "listing_id",
            "author_id",
            unique=True,
            sqlite_where=text("status = 'draft'"),
            postgresql_where=text("status = 'draft'"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)

    listing_id: str = Field(index=True)
    author_id: str | None = Field(default=None, index=True)
    device_id: str | None = None

    # Form content, any of which may still be missing
    rating: int | None = None
    body_text: str | None = None
    experience_date: str | None = None

    # Hosted proof (inline payloads are uploaded before they get here)
    proof_url: str | None = None
    proof_kind: str | None = None
    proof_file_name: str | None = None

    status: str = Field(default="draft", sa_column=Column(String, index=True, nullable=False))

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
