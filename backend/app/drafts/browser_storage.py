"""Browser-style persistent key-value storage.

Drafts written by anonymous visitors live in origin-scoped storage on the
client. ``BrowserStorage`` is the synchronous get/set/remove surface the
draft tiers need; ``MemoryBrowserStorage`` implements it with the same
per-key size ceiling a browser enforces.
"""

from typing import Iterator, Protocol


class StorageQuotaError(Exception):
    """Raised when a value exceeds the per-key storage limit."""

    def __init__(self, key: str, size: int, limit: int):
        self.key = key
        self.size = size
        self.limit = limit
        super().__init__(f"Value for {key!r} is {size} chars, limit is {limit}")


class BrowserStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> Iterator[str]: ...


class MemoryBrowserStorage:
    """Dict-backed BrowserStorage, one instance per browser profile."""

    DEFAULT_MAX_VALUE_CHARS = 5 * 1024 * 1024

    def __init__(self, max_value_chars: int = DEFAULT_MAX_VALUE_CHARS):
        self.max_value_chars = max_value_chars
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if len(value) > self.max_value_chars:
            raise StorageQuotaError(key, len(value), self.max_value_chars)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> Iterator[str]:
        # Snapshot so callers may remove while iterating
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)
