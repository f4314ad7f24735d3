"""
Conversation Model

Stores one logical chat thread between a user and the Atom assistant.
Each conversation is correlated to the outside world by its session id and
contains many messages.
"""

from datetime import datetime
from uuid import UUID, uuid4
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from sqlmodel import SQLModel, Field, Relationship, Column
from sqlalchemy import Index, JSON, Text, text

if TYPE_CHECKING:
    from .message import Message


def default_title(now: Optional[datetime] = None) -> str:
    """Display title derived from the creation date, e.g. 'Conversation 3/14/2025'."""
    now = now or datetime.utcnow()
    return f"Conversation {now.month}/{now.day}/{now.year}"


class Conversation(SQLModel, table=True):
    """
    Conversation thread keyed by session id.

    Relationships:
    - Has many Messages (cascade-deleted with the conversation)

    Invariants:
    - At most one active conversation per session_id (partial unique index)
    - Never hard-deleted by the application, only deactivated
    """
    __tablename__ = "conversations"
    __table_args__ = (
        Index(
            "uq_conversations_active_session",
            "session_id",
            unique=True,
            sqlite_where=text("is_active"),
            postgresql_where=text("is_active"),
        ),
        Index("ix_conversations_owner_active", "owner_id", "is_active"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    owner_id: str = Field(index=True)
    session_id: str = Field(index=True)
    title: Optional[str] = Field(default=None, max_length=255)
    summary: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    context: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    # "metadata" is reserved on declarative classes, so the attribute is renamed
    meta: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON, nullable=False))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    messages: List["Message"] = Relationship(
        back_populates="conversation",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "lazy": "select"}
    )
