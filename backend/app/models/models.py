"""Import every table model so ``SQLModel.metadata`` knows about them."""

from app.models.drafts import Draft
from app.models.listings import Listing
from app.models.profiles import Profile
from app.models.reviews import Review

__all__ = ["Draft", "Listing", "Profile", "Review"]
