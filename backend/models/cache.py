"""Semantic cache data models."""
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from config import CACHE_TTL_SECONDS
from models.session import new_id, parse_timestamp, utcnow


def parse_vector(value: Union[str, List[float], None]) -> List[float]:
    """Accept a pgvector text literal such as "[0.1,0.2]" or a list of numbers."""
    if value is None:
        return []
    if isinstance(value, str):
        value = json.loads(value)
    return [float(v) for v in value]


@dataclass
class CacheItem:
    """A cached completion keyed by the embedding of the prompts that produced it."""
    vectors: List[float]
    prompts: str  # Kept for debugging, never used for matching
    completion: str
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        if self.expires_at is None:
            self.expires_at = self.created_at + timedelta(seconds=CACHE_TTL_SECONDS)

    @classmethod
    def create(cls, vectors: List[float], prompts: str, completion: str, ttl_seconds: int) -> "CacheItem":
        created_at = utcnow()
        return cls(
            vectors=list(vectors),
            prompts=prompts,
            completion=completion,
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=ttl_seconds),
        )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vectors": self.vectors,
            "prompts": self.prompts,
            "completion": self.completion,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "CacheItem":
        return cls(
            id=record["id"],
            vectors=parse_vector(record.get("vectors")),
            prompts=record.get("prompts") or "",
            completion=record.get("completion") or "",
            created_at=parse_timestamp(record.get("created_at")),
            expires_at=parse_timestamp(record["expires_at"]) if record.get("expires_at") else None,
        )


@dataclass
class ScoredCacheItem:
    """Cache item with cosine similarity from a nearest-neighbor search."""
    item: CacheItem
    similarity: float
