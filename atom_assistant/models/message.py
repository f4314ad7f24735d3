"""
Message Model

Stores individual turns (user, assistant or system) within conversations.
Messages are immutable once created.
"""

import math
from datetime import datetime
from uuid import UUID
from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING
from sqlmodel import SQLModel, Field, Relationship, Column
from sqlalchemy import ForeignKey, Index, JSON, String, Text, Uuid

if TYPE_CHECKING:
    from .conversation import Conversation


class MessageRole(str, Enum):
    """Message sender role"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageType(str, Enum):
    """How the message entered the system"""
    TEXT = "text"
    VOICE = "voice"
    SYSTEM = "system"


def estimate_tokens(text: str) -> int:
    """Rough token estimate: four characters per token, rounded up."""
    return math.ceil(len(text or "") / 4)


class Message(SQLModel, table=True):
    """
    One turn within a Conversation.

    Ordering is created_at ascending; id breaks ties between messages
    persisted within the same clock tick.
    """
    __tablename__ = "conversation_messages"
    __table_args__ = (
        Index("ix_conversation_messages_conversation_created", "conversation_id", "created_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    conversation_id: UUID = Field(
        sa_column=Column(Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), index=True, nullable=False)
    )
    role: str = Field(sa_column=Column(String(16), nullable=False))  # Store enum value as string
    content: str = Field(sa_column=Column(Text, nullable=False))
    message_type: str = Field(default=MessageType.TEXT.value, sa_column=Column(String(16), nullable=False))
    tokens_used: int = Field(default=0)
    meta: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)

    conversation: Optional["Conversation"] = Relationship(
        back_populates="messages",
        sa_relationship_kwargs={"lazy": "select"}
    )
