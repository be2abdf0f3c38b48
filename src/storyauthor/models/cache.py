from __future__ import annotations

from pydantic import AwareDatetime, BaseModel, ConfigDict, TypeAdapter


class CacheEntry(BaseModel):
    """Cached completion text for one fingerprint."""

    model_config = ConfigDict(frozen=True)

    content: str
    timestamp: AwareDatetime  # UTC, time of the write


# Persisted shape: fingerprint -> entry, stored as one JSON blob
CacheTable = TypeAdapter(dict[str, CacheEntry])
