"""Shapes shared by the browser and cookie draft tiers."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from app.drafts.payload import DraftPayload, PointerPayload, coerce_payload

# Field names written by older clients, mapped to their current names
_LEGACY_FIELDS = {
    "business_id": "listing_id",
    "comment": "body_text",
    "user_id": "author_id",
}


class CorruptDraftError(ValueError):
    """Raised when stored draft data cannot be decoded."""


class StoredDraft(BaseModel):
    """A draft as held in browser storage or in a cookie."""

    listing_id: str
    device_id: str | None = None
    author_id: str | None = None

    rating: int | None = Field(None, ge=1, le=5)
    body_text: str | None = None
    experience_date: str | None = None
    proof: DraftPayload | None = None

    # Set when the inline proof was evicted out of the cookie
    has_large_proof: bool = False
    large_data_id: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def upgrade_legacy_shape(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for old, new in _LEGACY_FIELDS.items():
            if old in data and new not in data:
                data[new] = data.pop(old)

        legacy_proof = data.pop("proof_file_data", None) or data.pop("proof_payload", None)
        if legacy_proof is not None and data.get("proof") is None:
            data["proof"] = legacy_proof
        if data.get("proof") is None and data.get("proof_url"):
            data["proof"] = {
                "kind": "hosted",
                "url": data["proof_url"],
                "media_kind": data.get("proof_type") or data.get("proof_kind") or "image",
            }
        if isinstance(data.get("proof"), str):
            data["proof"] = coerce_payload(data["proof"], allow_untyped=True)
        return data

    @property
    def pointer_key(self) -> str | None:
        """Browser-storage key holding an evicted proof, if any."""
        if isinstance(self.proof, PointerPayload):
            return self.proof.object_key
        if self.has_large_proof and self.large_data_id:
            return self.large_data_id
        return None

    def is_complete(self) -> bool:
        return bool(self.rating and self.body_text and self.experience_date and self.proof)


def parse_stored_draft(raw: Any) -> StoredDraft:
    """Validate raw tier data into a StoredDraft.

    Raises:
        CorruptDraftError: If ``raw`` is not a draft object
    """
    if not isinstance(raw, dict):
        raise CorruptDraftError(f"Expected a draft object, got {type(raw).__name__}")
    try:
        return StoredDraft.model_validate(raw)
    except ValidationError as e:
        raise CorruptDraftError(f"Draft failed validation with {e.error_count()} error(s)") from e


class MigrationReport(BaseModel):
    """Outcome counts for one migration batch."""

    migrated: list[str] = Field(default_factory=list)
    pruned: list[str] = Field(default_factory=list)
    orphaned: list[str] = Field(default_factory=list)
    corrupted: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    proof_upload_failures: list[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            len(self.migrated) + len(self.pruned) + len(self.orphaned)
            + len(self.corrupted) + len(self.failed)
        )
