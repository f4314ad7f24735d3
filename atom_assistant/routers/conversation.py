"""
Conversation API Router

Read and maintenance endpoints over stored conversation memory: windowed
context, message history, session variables, clearing and user settings.
"""

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from typing import Any, Dict
from sqlmodel import Session

import logging

from atom_assistant.db.config import get_session
from atom_assistant.config import DEFAULT_CONTEXT_WINDOW, MEMORY_RETENTION_DAYS
from atom_assistant.exceptions import AssistantError, InputValidationError, NotFound, StorageUnavailable
from atom_assistant.schemas.turn import (
    CleanupResponse,
    ClearConversationResponse,
    ContextUpdateResponse,
    ConversationContextResponse,
    ConversationItem,
    MessageItem,
    MessagesResponse,
    RecentConversationsResponse,
    SettingsItem,
    SettingsResponse,
    SettingsUpdate,
)
from atom_assistant.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversation", tags=["conversation"])


def get_conversation_service(session: Session = Depends(get_session)) -> ConversationService:
    """Dependency for getting ConversationService instance."""
    return ConversationService(session)


def as_http_error(error: AssistantError) -> HTTPException:
    """Map store and validation errors onto HTTP status codes"""
    if isinstance(error, NotFound):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, InputValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, StorageUnavailable):
        code = status.HTTP_503_SERVICE_UNAVAILABLE
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail={"code": error.code, "message": error.message})


@router.get("/context/{session_id}", response_model=ConversationContextResponse)
async def get_context(
    session_id: str,
    window_size: int = Query(DEFAULT_CONTEXT_WINDOW, alias="windowSize", ge=0, le=200),
    service: ConversationService = Depends(get_conversation_service)
):
    """Windowed message history and context variables for a session."""
    try:
        return service.conversation_context(session_id, window_size)
    except AssistantError as e:
        raise as_http_error(e)


@router.patch("/context/{session_id}", response_model=ContextUpdateResponse)
async def update_context(
    session_id: str,
    context: Dict[str, Any] = Body(...),
    service: ConversationService = Depends(get_conversation_service)
):
    """Merge session-scoped variables into the active conversation."""
    try:
        conversation = service.update_context(session_id, context)
    except AssistantError as e:
        raise as_http_error(e)

    if conversation is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": NotFound.code, "message": "No active conversation for session"}
        )
    return ContextUpdateResponse(success=True, context=conversation.context)


@router.post("/clear/{session_id}", response_model=ClearConversationResponse)
async def clear_conversation(
    session_id: str,
    service: ConversationService = Depends(get_conversation_service)
):
    """Deactivate the session's conversation. Clearing twice is harmless."""
    try:
        service.deactivate(session_id)
    except AssistantError as e:
        raise as_http_error(e)
    return ClearConversationResponse(success=True)


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_stale_conversations(
    retention_days: int = Query(MEMORY_RETENTION_DAYS, alias="retentionDays", ge=1),
    service: ConversationService = Depends(get_conversation_service)
):
    """Deactivate conversations idle longer than the retention period (for scheduled jobs)."""
    try:
        deactivated = service.cleanup_stale_conversations(retention_days)
    except AssistantError as e:
        raise as_http_error(e)
    return CleanupResponse(success=True, deactivated=deactivated, retention_days=retention_days)


@router.get("/messages/{session_id}", response_model=MessagesResponse)
async def get_messages(
    session_id: str,
    limit: int = Query(DEFAULT_CONTEXT_WINDOW, ge=1, le=500),
    service: ConversationService = Depends(get_conversation_service)
):
    """Most recent messages for the session, oldest first."""
    try:
        messages = service.recent_messages(session_id, limit)
    except AssistantError as e:
        raise as_http_error(e)

    return MessagesResponse(
        success=True,
        messages=[
            MessageItem(
                id=msg.id,
                role=msg.role,
                content=msg.content,
                message_type=msg.message_type,
                tokens_used=msg.tokens_used,
                created_at=msg.created_at
            )
            for msg in messages
        ]
    )


@router.get("/recent/{user_id}", response_model=RecentConversationsResponse)
async def get_recent_conversations(
    user_id: str,
    limit: int = Query(10, ge=1, le=100),
    service: ConversationService = Depends(get_conversation_service)
):
    """A user's active conversations, most recently updated first."""
    try:
        conversations = service.recent_conversations(user_id, limit)
    except AssistantError as e:
        raise as_http_error(e)

    return RecentConversationsResponse(
        success=True,
        conversations=[
            ConversationItem(
                id=str(conv.id),
                session_id=conv.session_id,
                title=conv.title,
                summary=conv.summary,
                created_at=conv.created_at,
                updated_at=conv.updated_at
            )
            for conv in conversations
        ]
    )


@router.get("/settings/{user_id}", response_model=SettingsResponse)
async def get_settings(
    user_id: str,
    service: ConversationService = Depends(get_conversation_service)
):
    """User conversation settings, created with defaults on first access."""
    try:
        settings = service.get_or_create_settings(user_id)
    except AssistantError as e:
        raise as_http_error(e)
    return SettingsResponse(success=True, settings=SettingsItem.model_validate(settings))


@router.put("/settings/{user_id}", response_model=SettingsResponse)
async def update_settings(
    user_id: str,
    changes: SettingsUpdate,
    service: ConversationService = Depends(get_conversation_service)
):
    """Apply a partial settings update."""
    try:
        settings = service.update_settings(user_id, **changes.model_dump(exclude_none=True))
    except AssistantError as e:
        raise as_http_error(e)

    logger.info(f"Updated conversation settings for user {user_id}")
    return SettingsResponse(success=True, settings=SettingsItem.model_validate(settings))
