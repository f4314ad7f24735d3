"""Per-user conversation memory settings."""
from sqlmodel import SQLModel, Field
from datetime import datetime
from typing import Optional
import uuid

# Fields callers may change through the settings endpoint
EDITABLE_SETTINGS = (
    "max_conversation_history",
    "auto_summarize_after",
    "context_window_size",
    "preferred_response_style",
    "memory_retention_days",
    "enable_auto_summary",
    "enable_context_awareness",
    "save_voice_transcriptions",
    "enable_personalization",
)


class UserSettings(SQLModel, table=True):
    """Conversation settings, one row per user, created lazily with defaults."""
    __tablename__ = "user_conversation_settings"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
    )
    user_id: str = Field(unique=True, index=True, max_length=255)
    max_conversation_history: int = Field(default=50)
    auto_summarize_after: int = Field(default=20)
    context_window_size: int = Field(default=10)
    preferred_response_style: str = Field(default="conversational", max_length=50)
    memory_retention_days: int = Field(default=30)

    # Feature toggles
    enable_auto_summary: bool = Field(default=True)
    enable_context_awareness: bool = Field(default=True)
    save_voice_transcriptions: bool = Field(default=True)
    enable_personalization: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default_factory=datetime.utcnow)
