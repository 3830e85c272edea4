"""Helpers for time-stamped identifiers (``<prefix>_<epoch_ms>_<rand>``)."""

import secrets
import string
from datetime import datetime, timezone

_BASE36 = string.digits + string.ascii_lowercase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def epoch_ms(moment: datetime | None = None) -> int:
    moment = moment or utcnow()
    return int(moment.timestamp() * 1000)


def random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_BASE36) for _ in range(length))


def timestamped_id(prefix: str, moment: datetime | None = None) -> str:
    """Build an id such as ``large_data_1717171717171_k3j9x0abc``."""
    return f"{prefix}_{epoch_ms(moment)}_{random_suffix()}"


def parse_timestamped_id(prefix: str, value: str) -> datetime | None:
    """Recover the creation time embedded by :func:`timestamped_id`.

    Returns None when ``value`` does not carry ``prefix`` or the timestamp
    part is not an integer.
    """
    head = f"{prefix}_"
    if not value.startswith(head):
        return None
    stamp, _, _ = value[len(head):].partition("_")
    if not stamp.isdigit():
        return None
    return datetime.fromtimestamp(int(stamp) / 1000, tz=timezone.utc)
