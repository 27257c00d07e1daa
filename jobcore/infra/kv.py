"""
Key/value storage backends used by the persistent job store.
"""

import copy
import fnmatch
import time
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class StorageBackend(Protocol):
    """Flat key/value namespace holding JSON-compatible values."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def keys(self, pattern: str | None = None) -> list[str]: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


class MemoryKeyValueBackend:
    """In-process key/value backend.

    Values are copied on the way in and out, like a serializing store. Keys keep
    first-insertion order.
    """

    def __init__(self) -> None:
        self._values: dict[str, Any] = {}
        self._expires: dict[str, float] = {}

    def _expired(self, key: str) -> bool:
        expires_at = self._expires.get(key)
        if expires_at is not None and expires_at <= time.monotonic():
            self._values.pop(key, None)
            self._expires.pop(key, None)
            return True
        return False

    async def get(self, key: str) -> Any | None:
        if key not in self._values or self._expired(key):
            return None
        return copy.deepcopy(self._values[key])

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        self._values[key] = copy.deepcopy(value)
        if ttl:
            self._expires[key] = time.monotonic() + ttl
        else:
            self._expires.pop(key, None)

    async def delete(self, key: str) -> None:
        self._values.pop(key, None)
        self._expires.pop(key, None)

    async def keys(self, pattern: str | None = None) -> list[str]:
        live = [key for key in list(self._values) if not self._expired(key)]
        if pattern is None:
            return live
        return [key for key in live if fnmatch.fnmatchcase(key, pattern)]

    async def clear(self) -> None:
        self._values.clear()
        self._expires.clear()

    async def close(self) -> None:
        return None
