"""
Key/value store abstraction used by the ranking store.

The contract is deliberately small so it can sit on top of any eventually
consistent backend: JSON reads (single and batch), string writes, deletes.
No transactions, no ordering, no listing.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import structlog

from seo_ranking.core.exceptions import KVStoreError

logger = structlog.get_logger(__name__)


class KVStore(ABC):
    """Abstract JSON key/value store."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Return the JSON-decoded value for key, or None if absent."""
        ...

    @abstractmethod
    async def get_many(self, keys: Sequence[str]) -> dict[str, Any | None]:
        """Batch read. Every requested key is present in the result."""
        ...

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Store a JSON string under key."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...


def decode_json(key: str, raw: str | bytes | None) -> Any | None:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise KVStoreError("get", key, f"invalid JSON: {exc}") from exc


class MemoryKVStore(KVStore):
    """
    Process-local store for development and tests.
    Values are kept as the serialized strings, mirroring a real backend.
    """

    def __init__(self, initial: dict[str, str] | None = None):
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Any | None:
        return decode_json(key, self.data.get(key))

    async def get_many(self, keys: Sequence[str]) -> dict[str, Any | None]:
        return {key: decode_json(key, self.data.get(key)) for key in keys}

    async def put(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self.data)
