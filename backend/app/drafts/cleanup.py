"""Retention sweeps for stale drafts and abandoned large-object entries."""

import logging
from datetime import datetime, timedelta

from app.core.config import settings
from app.core.ids import parse_timestamped_id, utcnow
from app.core.tracing import mask_user_id
from app.drafts.browser_storage import BrowserStorage
from app.drafts.cookie_store import LARGE_DATA_PREFIX
from app.drafts.repository import DraftRepository

logger = logging.getLogger(__name__)


def sweep_expired_drafts(
    repository: DraftRepository,
    author_id: str,
    now: datetime | None = None,
    retention_days: int = settings.DRAFT_RETENTION_DAYS,
) -> int:
    """Delete the author's durable drafts untouched for ``retention_days``."""
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    deleted = repository.delete_stale(author_id, cutoff)
    if deleted:
        logger.info(
            "Swept expired drafts",
            extra={"author_id": mask_user_id(author_id), "deleted": deleted},
        )
    return deleted


def sweep_large_objects(
    storage: BrowserStorage,
    now: datetime | None = None,
    retention_days: int = settings.LARGE_OBJECT_RETENTION_DAYS,
) -> int:
    """Remove evicted proof entries older than ``retention_days``.

    Age comes from the timestamp in the key name, so entries are removed
    whether or not the cookie that pointed at them still exists.
    """
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    removed = 0
    for key in storage.keys():
        created_at = parse_timestamped_id(LARGE_DATA_PREFIX, key)
        if created_at is not None and created_at < cutoff:
            storage.remove_item(key)
            removed += 1
    if removed:
        logger.info("Removed stale large-object entries", extra={"removed": removed})
    return removed
