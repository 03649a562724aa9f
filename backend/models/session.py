"""Session and message data models."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from config import DEFAULT_SESSION_NAME


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Union[str, datetime, None]) -> datetime:
    """
    Parse a timestamp coming back from the store.

    Postgres can return timestamps with varying microsecond precision,
    which Python's fromisoformat() can't always handle. This normalizes
    the fractional part to six digits before parsing.

    Args:
        value: ISO 8601 string, datetime, or None

    Returns:
        Timezone-aware datetime (naive values are assumed to be UTC)
    """
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    timestamp_str = value.replace("Z", "+00:00")

    # Format: 2026-02-21T02:08:26.18976+00:00
    if "." in timestamp_str:
        head, tail = timestamp_str.split(".", 1)
        tz = ""
        for sign in ("+", "-"):
            if sign in tail:
                tail, tz_part = tail.split(sign, 1)
                tz = f"{sign}{tz_part}"
                break
        timestamp_str = f"{head}.{tail[:6].ljust(6, '0')}{tz}"

    parsed = datetime.fromisoformat(timestamp_str)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Message:
    """
    One prompt/completion pair within a session.

    A message is inserted as soon as the user submits a prompt (completion
    empty) and is later updated in place with the completion. A message
    whose completion is still empty is pending, or its generation failed.
    """
    session_id: str  # Partition key
    prompt: str
    prompt_tokens: int = 0
    completion: str = ""
    completion_tokens: int = 0
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def is_pending(self) -> bool:
        return not self.completion

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "prompt": self.prompt,
            "prompt_tokens": self.prompt_tokens,
            "completion": self.completion,
            "completion_tokens": self.completion_tokens,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Message":
        return cls(
            id=record["id"],
            session_id=record["session_id"],
            timestamp=parse_timestamp(record.get("timestamp")),
            prompt=record.get("prompt") or "",
            prompt_tokens=record.get("prompt_tokens") or 0,
            completion=record.get("completion") or "",
            completion_tokens=record.get("completion_tokens") or 0,
        )


@dataclass
class Session:
    """A named conversation with a running token total."""
    name: str = DEFAULT_SESSION_NAME
    tokens: int = 0
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    session_id: Optional[str] = None  # Partition key, always equal to id

    def __post_init__(self):
        if self.session_id is None:
            self.session_id = self.id

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "name": self.name,
            "tokens": self.tokens,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Session":
        return cls(
            id=record["id"],
            session_id=record.get("session_id") or record["id"],
            name=record.get("name") or DEFAULT_SESSION_NAME,
            tokens=record.get("tokens") or 0,
            created_at=parse_timestamp(record.get("created_at")),
        )
