"""Database model for user profiles."""

import uuid
from datetime import datetime, timezone
from sqlmodel import Field, SQLModel


class Profile(SQLModel, table=True):
    """Per-user profile next to the identity provider's account.

    ``is_verified`` is set by the customer verification workflow; only
    verified customers may publish reviews.
    """

    __tablename__ = "profiles"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: str = Field(index=True, unique=True)
    email: str
    full_name: str | None = None
    user_type: str = Field(default="customer")  # customer | business
    is_verified: bool = Field(default=False)

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
