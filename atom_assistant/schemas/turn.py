"""Request/response schemas for the AI turn and conversation endpoints."""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Any, Dict, List, Optional


class CamelModel(BaseModel):
    """Base schema serialized with camelCase keys, accepting either casing."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TextTurnRequest(CamelModel):
    """Schema for a text turn. An empty or malformed body is answered with mode=error."""
    message: Optional[str] = None
    user_id: Optional[str] = None
    conversation_id: Optional[str] = None


class TurnResponse(CamelModel):
    """Uniform turn response, identical in shape for success and error."""
    message: str
    conversation_id: str
    timestamp: datetime
    mode: str  # "openai" or "error"
    error: Optional[str] = None  # Error code when mode == "error"

    @classmethod
    def from_result(cls, result) -> "TurnResponse":
        return cls(
            message=result.message,
            conversation_id=result.session_id,
            timestamp=result.timestamp,
            mode=result.mode,
            error=result.error,
        )


class VoiceTurnResponse(TurnResponse):
    """Turn response that also carries the transcription (or an error marker)."""
    transcription: str

    @classmethod
    def from_result(cls, result) -> "VoiceTurnResponse":
        return cls(
            message=result.message,
            transcription=result.transcription or "",
            conversation_id=result.session_id,
            timestamp=result.timestamp,
            mode=result.mode,
            error=result.error,
        )


class HealthResponse(CamelModel):
    status: str
    service: str
    openai_configured: bool
    timestamp: datetime


class ContextMessage(CamelModel):
    role: str
    content: str
    timestamp: str


class ConversationContextResponse(CamelModel):
    """Windowed history for a session plus its context variables."""
    conversation_id: Optional[str] = None
    session_id: str
    messages: List[ContextMessage]
    total_messages: int
    context: Dict[str, Any] = Field(default_factory=dict)


class ContextUpdateResponse(CamelModel):
    success: bool
    context: Dict[str, Any] = Field(default_factory=dict)


class ClearConversationResponse(CamelModel):
    success: bool
    message: str = "Conversation cleared"


class MessageItem(CamelModel):
    id: int
    role: str
    content: str
    message_type: str
    tokens_used: int
    created_at: datetime


class MessagesResponse(CamelModel):
    success: bool
    messages: List[MessageItem]


class ConversationItem(CamelModel):
    id: str
    session_id: str
    title: Optional[str] = None
    summary: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RecentConversationsResponse(CamelModel):
    success: bool
    conversations: List[ConversationItem]


class SettingsItem(CamelModel):
    user_id: str
    max_conversation_history: int
    auto_summarize_after: int
    context_window_size: int
    preferred_response_style: str
    memory_retention_days: int
    enable_auto_summary: bool
    enable_context_awareness: bool
    save_voice_transcriptions: bool
    enable_personalization: bool

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class SettingsResponse(CamelModel):
    success: bool
    settings: SettingsItem


class SettingsUpdate(CamelModel):
    """Partial settings update; unknown fields are rejected."""
    max_conversation_history: Optional[int] = Field(None, ge=1)
    auto_summarize_after: Optional[int] = Field(None, ge=1)
    context_window_size: Optional[int] = Field(None, ge=1, le=200)
    preferred_response_style: Optional[str] = Field(None, max_length=50)
    memory_retention_days: Optional[int] = Field(None, ge=1)
    enable_auto_summary: Optional[bool] = None
    enable_context_awareness: Optional[bool] = None
    save_voice_transcriptions: Optional[bool] = None
    enable_personalization: Optional[bool] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class CleanupResponse(CamelModel):
    success: bool
    deactivated: int
    retention_days: int
