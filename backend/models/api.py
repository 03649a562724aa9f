"""Request and response models for the HTTP API."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from models.session import Message, Session


class CreateSessionRequest(BaseModel):
    name: Optional[str] = None


class RenameSessionRequest(BaseModel):
    name: str = Field(..., min_length=1)


class CompletionRequest(BaseModel):
    prompt: str


class SessionResponse(BaseModel):
    id: str
    session_id: str
    name: str
    tokens: int
    created_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            session_id=session.session_id,
            name=session.name,
            tokens=session.tokens,
            created_at=session.created_at,
        )


class MessageResponse(BaseModel):
    id: str
    session_id: str
    timestamp: datetime
    prompt: str
    prompt_tokens: int
    completion: str
    completion_tokens: int
    pending: bool

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            session_id=message.session_id,
            timestamp=message.timestamp,
            prompt=message.prompt,
            prompt_tokens=message.prompt_tokens,
            completion=message.completion,
            completion_tokens=message.completion_tokens,
            pending=message.is_pending,
        )


class SummaryResponse(BaseModel):
    session_id: str
    name: str


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
