"""Conversation and message models for chat history persistence."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, Column, Index
from sqlmodel import Field, SQLModel


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    user = "user"
    assistant = "assistant"


class Attachment(BaseModel):
    """Uploaded file embedded in a user message. Stored in camelCase, as the client sends it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    file_name: str
    file_type: str
    file_path: str  # server-local reference, resolved through the upload sandbox
    file_size: int


class Conversation(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str
    title: str = Field(default="New Chat")
    model: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class ChatMessage(SQLModel, table=True):
    id: str = Field(default_factory=_new_id, primary_key=True)
    conversation_id: str = Field(foreign_key="conversation.id", index=True)
    role: MessageRole
    content: str
    model: Optional[str] = None  # assistant messages only
    # NULLs never collide, so only keyed submissions are deduplicated
    idempotency_key: Optional[str] = Field(default=None, unique=True, index=True)
    attachments: list[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def get_attachments(self) -> list[Attachment]:
        return [Attachment.model_validate(a) for a in self.attachments or []]


# Ordered history retrieval, and "most recently active first" listing
Index("ix_chatmessage_conversation_created", ChatMessage.conversation_id, ChatMessage.created_at)
Index("ix_conversation_user_updated", Conversation.user_id, Conversation.updated_at.desc())
