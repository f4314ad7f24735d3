"""
Conversation Service

Durable CRUD over conversations, messages and per-user settings.

Invariants:
- At most one active conversation per session id; concurrent creators
  resolve to the first writer's row
- Messages are append-only; appending bumps the conversation's updated_at
  and runs the summarization check, whose failures never reach the caller
- Database failures surface as StorageUnavailable and are not retried here
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional, Union
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from atom_assistant.agents.skills.conversation_summarization import (
    ConversationSummarizationSkill,
    conversation_summarization_skill,
)
from atom_assistant.config import DEFAULT_CONTEXT_WINDOW, MEMORY_RETENTION_DAYS
from atom_assistant.exceptions import InputValidationError, NotFound, StorageUnavailable, StoreError
from atom_assistant.models.conversation import Conversation, default_title
from atom_assistant.models.message import Message, MessageRole, MessageType, estimate_tokens
from atom_assistant.models.user_settings import EDITABLE_SETTINGS, UserSettings

logger = logging.getLogger(__name__)

# Settings that must stay strictly positive
_POSITIVE_SETTINGS = {
    "max_conversation_history",
    "auto_summarize_after",
    "context_window_size",
    "memory_retention_days",
}


class ConversationService:
    """Service for managing conversations, messages and user settings"""

    def __init__(self, db: Session, summarizer: ConversationSummarizationSkill = conversation_summarization_skill):
        self.db = db
        self.summarizer = summarizer

    @contextmanager
    def _storage_guard(self, operation: str) -> Iterator[None]:
        """Roll back and reclassify database failures as StorageUnavailable."""
        try:
            yield
        except StoreError:
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Conversation store failure during {operation}: {str(e)}")
            raise StorageUnavailable(
                f"Conversation store unavailable during {operation}",
                details={"operation": operation}
            ) from e

    # ------------------------------------------------------------------
    # Conversations
    # ------------------------------------------------------------------

    def _find_active(self, session_id: str) -> Optional[Conversation]:
        statement = select(Conversation).where(
            Conversation.session_id == session_id,
            Conversation.is_active == True  # noqa: E712
        )
        return self.db.exec(statement).first()

    def get_active(self, session_id: str) -> Optional[Conversation]:
        """Get the active conversation for a session, if any"""
        with self._storage_guard("get_active"):
            return self._find_active(session_id)

    def get_conversation(self, conversation_id: UUID) -> Conversation:
        """Get conversation by id, raising NotFound if it does not exist"""
        with self._storage_guard("get_conversation"):
            conversation = self.db.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFound(
                f"Conversation {conversation_id} not found",
                details={"conversation_id": str(conversation_id)}
            )
        return conversation

    def get_or_create(
        self,
        session_id: str,
        owner_id: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Conversation:
        """
        Return the active conversation for session_id, creating it if needed.

        A uniqueness violation on insert means a concurrent caller created the
        conversation first; the session is rolled back and that row returned.
        """
        with self._storage_guard("get_or_create"):
            conversation = self._find_active(session_id)
            if conversation is not None:
                return conversation

            conversation = Conversation(
                owner_id=owner_id,
                session_id=session_id,
                title=default_title(),
                context={},
                meta={"createdFrom": "atom_voice_assistant", **(metadata or {})}
            )
            self.db.add(conversation)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                existing = self._find_active(session_id)
                if existing is None:
                    raise
                logger.info(f"Session {session_id} was created concurrently, reusing conversation {existing.id}")
                return existing

            self.db.refresh(conversation)
            logger.info(f"Created new conversation: {conversation.id} for session: {session_id}")
            return conversation

    def deactivate(self, session_id: str) -> int:
        """Mark the active conversation for a session inactive (idempotent)"""
        with self._storage_guard("deactivate"):
            statement = select(Conversation).where(
                Conversation.session_id == session_id,
                Conversation.is_active == True  # noqa: E712
            )
            conversations = self.db.exec(statement).all()
            now = datetime.utcnow()
            for conversation in conversations:
                conversation.is_active = False
                conversation.updated_at = now
                self.db.add(conversation)
            self.db.commit()

        logger.info(f"Cleared conversation for session: {session_id}")
        return len(conversations)

    def update_context(self, session_id: str, context: Dict[str, Any]) -> Optional[Conversation]:
        """Shallow-merge variables into the active conversation's context"""
        with self._storage_guard("update_context"):
            conversation = self._find_active(session_id)
            if conversation is None:
                return None
            # Reassign so the JSON column is flagged dirty
            conversation.context = {**(conversation.context or {}), **context}
            conversation.updated_at = datetime.utcnow()
            self.db.add(conversation)
            self.db.commit()
            self.db.refresh(conversation)
            return conversation

    def recent_conversations(self, user_id: str, limit: int = 10) -> List[Conversation]:
        """Get a user's active conversations, most recently updated first"""
        with self._storage_guard("recent_conversations"):
            statement = select(Conversation).where(
                Conversation.owner_id == user_id,
                Conversation.is_active == True  # noqa: E712
            ).order_by(Conversation.updated_at.desc()).limit(limit)
            return list(self.db.exec(statement).all())

    def cleanup_stale_conversations(self, retention_days: Optional[int] = None) -> int:
        """
        Deactivate active conversations untouched for longer than the retention period

        Driven by an external scheduler through POST /conversation/cleanup.
        """
        retention_days = retention_days or MEMORY_RETENTION_DAYS
        cutoff = datetime.utcnow() - timedelta(days=retention_days)

        with self._storage_guard("cleanup_stale_conversations"):
            statement = select(Conversation).where(
                Conversation.is_active == True,  # noqa: E712
                Conversation.updated_at < cutoff
            )
            stale = self.db.exec(statement).all()
            for conversation in stale:
                conversation.is_active = False
                self.db.add(conversation)
            self.db.commit()

        logger.info(f"Cleaned up {len(stale)} conversations older than {retention_days} days")
        return len(stale)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def append_message(
        self,
        conversation_id: UUID,
        role: Union[MessageRole, str],
        content: str,
        message_type: Union[MessageType, str] = MessageType.TEXT,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Message:
        """Append an immutable message and bump the conversation timestamp"""
        with self._storage_guard("append_message"):
            conversation = self.db.get(Conversation, conversation_id)
            if conversation is None:
                raise NotFound(
                    f"Conversation {conversation_id} not found",
                    details={"conversation_id": str(conversation_id)}
                )

            now = datetime.utcnow()
            message = Message(
                conversation_id=conversation.id,
                role=MessageRole(role).value,
                content=content,
                message_type=MessageType(message_type).value,
                tokens_used=estimate_tokens(content),
                meta={
                    **(metadata or {}),
                    "timestamp": now.isoformat(),
                    "sessionId": conversation.session_id
                },
                created_at=now
            )
            self.db.add(message)

            conversation.updated_at = now
            self.db.add(conversation)

            self.db.commit()
            self.db.refresh(message)

        self._check_and_summarize(conversation_id)

        logger.info(f"Added {message.role} message to conversation {conversation_id}")
        return message

    def _latest_messages(self, conversation_id: UUID, limit: int) -> List[Message]:
        statement = select(Message).where(
            Message.conversation_id == conversation_id
        ).order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)

        messages = list(self.db.exec(statement).all())
        messages.reverse()
        return messages

    def recent_messages(self, session_id: str, limit: int = DEFAULT_CONTEXT_WINDOW) -> List[Message]:
        """Most recent `limit` messages of the active conversation, oldest first"""
        if limit <= 0:
            return []

        with self._storage_guard("recent_messages"):
            conversation = self._find_active(session_id)
            if conversation is None:
                return []
            return self._latest_messages(conversation.id, limit)

    def message_count(self, conversation_id: Optional[UUID]) -> int:
        """Number of messages stored for a conversation"""
        if conversation_id is None:
            return 0

        with self._storage_guard("message_count"):
            statement = select(func.count(Message.id)).where(
                Message.conversation_id == conversation_id
            )
            return int(self.db.exec(statement).one())

    def conversation_context(self, session_id: str, window_size: int = DEFAULT_CONTEXT_WINDOW) -> Dict[str, Any]:
        """Windowed history plus session variables for the active conversation"""
        messages = self.recent_messages(session_id, window_size)
        conversation = self.get_active(session_id)

        return {
            "conversationId": str(conversation.id) if conversation else None,
            "sessionId": session_id,
            "messages": [
                {
                    "role": msg.role,
                    "content": msg.content,
                    "timestamp": msg.created_at.isoformat()
                }
                for msg in messages
            ],
            "totalMessages": self.message_count(conversation.id if conversation else None),
            "context": (conversation.context or {}) if conversation else {}
        }

    # ------------------------------------------------------------------
    # Summarization
    # ------------------------------------------------------------------

    def _check_and_summarize(self, conversation_id: UUID) -> None:
        """Write a rolling summary on exact multiples of the threshold; never raises"""
        try:
            conversation = self.db.get(Conversation, conversation_id)
            if conversation is None:
                return

            settings = self._find_settings(conversation.owner_id)
            if settings is not None and not settings.enable_auto_summary:
                return
            threshold = settings.auto_summarize_after if settings is not None else None

            count = self.message_count(conversation_id)
            if not self.summarizer.should_summarize(count, threshold):
                return

            window = self._latest_messages(conversation_id, self.summarizer.summary_window)
            digest = self.summarizer.summarize(window)

            conversation.summary = digest.summary
            conversation.updated_at = datetime.utcnow()
            self.db.add(conversation)
            self.db.commit()
            logger.info(
                f"Created summary for conversation {conversation_id} at {count} messages "
                f"(window of {digest.message_count}: {', '.join(digest.key_points) or 'no key points'})"
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Summarization failed for conversation {conversation_id}: {str(e)}", exc_info=True)

    # ------------------------------------------------------------------
    # User settings
    # ------------------------------------------------------------------

    def _find_settings(self, user_id: str) -> Optional[UserSettings]:
        statement = select(UserSettings).where(UserSettings.user_id == user_id)
        return self.db.exec(statement).first()

    def get_or_create_settings(self, user_id: str) -> UserSettings:
        """Get a user's settings, creating defaults on first access"""
        with self._storage_guard("get_or_create_settings"):
            settings = self._find_settings(user_id)
            if settings is not None:
                return settings

            settings = UserSettings(user_id=user_id)
            self.db.add(settings)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                existing = self._find_settings(user_id)
                if existing is None:
                    raise
                return existing

            self.db.refresh(settings)
            logger.info(f"Created default conversation settings for user {user_id}")
            return settings

    def update_settings(self, user_id: str, **changes: Any) -> UserSettings:
        """Apply an explicit settings update"""
        unknown = sorted(set(changes) - set(EDITABLE_SETTINGS))
        if unknown:
            raise InputValidationError(
                f"Unknown settings: {', '.join(unknown)}",
                details={"fields": unknown}
            )
        for name in _POSITIVE_SETTINGS.intersection(changes):
            if changes[name] is not None and int(changes[name]) < 1:
                raise InputValidationError(
                    f"{name} must be a positive integer",
                    details={"field": name}
                )

        settings = self.get_or_create_settings(user_id)

        with self._storage_guard("update_settings"):
            for name, value in changes.items():
                if value is not None:
                    setattr(settings, name, value)
            settings.updated_at = datetime.utcnow()
            self.db.add(settings)
            self.db.commit()
            self.db.refresh(settings)
            return settings
