"""Durable-tier draft persistence on the ``drafts`` table."""

import logging
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from app.core.ids import utcnow
from app.models.drafts import Draft

logger = logging.getLogger(__name__)

DRAFT_FIELDS = (
    "device_id",
    "rating",
    "body_text",
    "experience_date",
    "proof_url",
    "proof_kind",
    "proof_file_name",
)


class DraftRepository:
    """Per-(listing, author) active draft access."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, draft_id: uuid.UUID) -> Draft | None:
        return self.session.get(Draft, draft_id)

    def get_active(self, listing_id: str, author_id: str) -> Draft | None:
        statement = select(Draft).where(
            Draft.listing_id == listing_id,
            Draft.author_id == author_id,
            Draft.status == "draft",
        )
        return self.session.exec(statement).first()

    def list_active(self, author_id: str) -> list[Draft]:
        statement = (
            select(Draft)
            .where(Draft.author_id == author_id, Draft.status == "draft")
            .order_by(col(Draft.updated_at).desc())
        )
        return list(self.session.exec(statement).all())

    def upsert(self, listing_id: str, author_id: str, fields: dict[str, Any], now: datetime | None = None) -> Draft:
        """Create or update the active draft for (listing, author).

        The partial unique index decides races: if another writer inserted
        the active row first, the insert fails and that row is updated
        instead.
        """
        now = now or utcnow()
        values = {k: v for k, v in fields.items() if k in DRAFT_FIELDS}

        existing = self.get_active(listing_id, author_id)
        if existing is None:
            draft = Draft(
                listing_id=listing_id,
                author_id=author_id,
                status="draft",
                created_at=now,
                updated_at=now,
                **values,
            )
            self.session.add(draft)
            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                logger.info(
                    "Concurrent draft insert detected, updating existing row",
                    extra={"listing_id": listing_id},
                )
                existing = self.get_active(listing_id, author_id)
                if existing is None:
                    raise
            else:
                self.session.refresh(draft)
                return draft

        for key, value in values.items():
            setattr(existing, key, value)
        existing.updated_at = now
        self.session.add(existing)
        self.session.commit()
        self.session.refresh(existing)
        return existing

    def delete(self, draft: Draft, commit: bool = True) -> None:
        self.session.delete(draft)
        if commit:
            self.session.commit()

    def delete_stale(self, author_id: str, cutoff: datetime) -> int:
        """Delete the author's ``draft`` rows last updated before ``cutoff``."""
        statement = delete(Draft).where(
            Draft.author_id == author_id,
            Draft.status == "draft",
            Draft.updated_at < cutoff,
        )
        result = self.session.exec(statement)  # type: ignore[call-overload]
        self.session.commit()
        return result.rowcount or 0
