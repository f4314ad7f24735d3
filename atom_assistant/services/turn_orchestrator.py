"""
Turn Orchestrator

Coordinates one request/response turn for text and voice input:

    [voice only] transcribe -> assemble context -> complete -> persist
    (summarization runs inside the store on append)

Session identity: ``session_id = conversation_id or user_id``. Without an
explicit conversation id every turn from the same user lands in one running
conversation; callers that want independent threads pass distinct
conversation ids. Clients routinely omit the id, so this rule is relied upon
and must not change.

Every outcome, success or failure, is a TurnResult with the same fields.
Gateway and validation errors become apologetic ``mode="error"`` results;
storage errors while persisting are logged and the reply is still returned.
Concurrent turns on the same session are not serialized.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
import logging
import time

from atom_assistant.agents.skills.error_recovery import ErrorRecoverySkill, error_recovery_skill
from atom_assistant.clients.openai_client import ChatCompletionGateway, TranscriptionGateway
from atom_assistant.config import DEFAULT_USER_ID
from atom_assistant.exceptions import (
    AssistantError,
    EmptyAudio,
    EmptyTranscription,
    GatewayError,
    InputValidationError,
    StoreError,
)
from atom_assistant.models.message import MessageRole, MessageType
from atom_assistant.services.context_assembler import ContextAssembler
from atom_assistant.services.conversation_service import ConversationService
from atom_assistant.utils.logger import turn_logger

logger = logging.getLogger(__name__)

MODE_OPENAI = "openai"
MODE_ERROR = "error"
FALLBACK_REPLY = "Sorry, I could not generate a response."


@dataclass
class TurnResult:
    """Outcome of a text or voice turn"""
    message: str
    session_id: str
    mode: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    transcription: Optional[str] = None
    error: Optional[str] = None  # Error code when mode == "error"
    persisted: bool = False


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class TurnOrchestrator:
    """Sequences gateways, context assembly and persistence for a turn"""

    def __init__(
        self,
        store: ConversationService,
        assembler: ContextAssembler,
        chat_gateway: ChatCompletionGateway,
        transcription_gateway: TranscriptionGateway,
        recovery: ErrorRecoverySkill = error_recovery_skill
    ):
        self.store = store
        self.assembler = assembler
        self.chat_gateway = chat_gateway
        self.transcription_gateway = transcription_gateway
        self.recovery = recovery

    @staticmethod
    def resolve_session_id(user_id: str, conversation_id: Optional[str] = None) -> str:
        """Explicit conversation id if provided, else the user id."""
        return conversation_id or user_id

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_text(
        self,
        message: Optional[str],
        user_id: Optional[str],
        conversation_id: Optional[str] = None
    ) -> TurnResult:
        """
        Process a text turn

        Args:
            message: The user's utterance
            user_id: Requesting user (defaults to DEFAULT_USER_ID)
            conversation_id: Optional explicit thread id

        Returns:
            TurnResult with the reply and resolved session id
        """
        user_id = user_id or DEFAULT_USER_ID
        session_id = self.resolve_session_id(user_id, conversation_id)
        logger.info(f"Text turn for session {session_id}: {(message or '')[:50]}...")

        try:
            if not isinstance(message, str) or not message.strip():
                raise InputValidationError("Message is required", details={"field": "message"})
            return await self._complete_turn(message, user_id, session_id, MessageType.TEXT, {})
        except AssistantError as e:
            return self._error_result(e, session_id)
        except Exception as e:
            logger.error(f"Unexpected text turn error for session {session_id}: {str(e)}", exc_info=True)
            return self._error_result(e, session_id)

    async def handle_voice(
        self,
        audio_bytes: Optional[bytes],
        user_id: Optional[str],
        conversation_id: Optional[str] = None,
        filename: Optional[str] = None,
        content_type: Optional[str] = None
    ) -> TurnResult:
        """
        Process a voice turn: transcribe, then run the text turn on the transcript

        Args:
            audio_bytes: Raw recording
            user_id: Requesting user (defaults to DEFAULT_USER_ID)
            conversation_id: Optional explicit thread id
            filename: Upload name, used to hint the audio container
            content_type: Upload MIME type

        Returns:
            TurnResult with reply, transcription and resolved session id
        """
        user_id = user_id or DEFAULT_USER_ID
        session_id = self.resolve_session_id(user_id, conversation_id)
        transcription = None

        try:
            if not audio_bytes:
                raise EmptyAudio("No audio received", details={"field": "audio"})

            logger.info(f"Voice turn for session {session_id}: {len(audio_bytes)} bytes")
            started = time.monotonic()
            raw_text = await self.transcription_gateway.transcribe(
                audio_bytes,
                filename=filename or "speech.webm",
                content_type=content_type or "audio/webm",
            )
            transcription = (raw_text or "").strip()
            if not transcription:
                transcription = None
                raise EmptyTranscription("Transcription was empty", details={"audio_bytes": len(audio_bytes)})

            metadata = {
                "audioBytes": len(audio_bytes),
                "contentType": content_type or "audio/webm",
                "transcriptionMs": _elapsed_ms(started),
            }
            return await self._complete_turn(
                transcription, user_id, session_id, MessageType.VOICE, metadata,
                transcription=transcription
            )
        except AssistantError as e:
            return self._error_result(e, session_id, voice=True, transcription=transcription)
        except Exception as e:
            logger.error(f"Unexpected voice turn error for session {session_id}: {str(e)}", exc_info=True)
            return self._error_result(e, session_id, voice=True, transcription=transcription)

    def reject(
        self,
        error: AssistantError,
        user_id: Optional[str],
        conversation_id: Optional[str] = None,
        voice: bool = False
    ) -> TurnResult:
        """Error result for a request refused before the turn could start (e.g. a malformed body)"""
        session_id = self.resolve_session_id(user_id or DEFAULT_USER_ID, conversation_id)
        return self._error_result(error, session_id, voice=voice)

    # ------------------------------------------------------------------
    # Turn steps
    # ------------------------------------------------------------------

    async def _complete_turn(
        self,
        utterance: str,
        user_id: str,
        session_id: str,
        message_type: MessageType,
        metadata: Dict[str, Any],
        transcription: Optional[str] = None
    ) -> TurnResult:
        started = time.monotonic()
        messages = self.assembler.assemble(session_id, user_id, utterance)

        reply = await self.chat_gateway.complete(messages)
        if not reply or not reply.strip():
            logger.warning(f"Empty completion for session {session_id}, using fallback reply")
            reply = FALLBACK_REPLY

        processing_ms = _elapsed_ms(started)
        persisted = self._persist_turn(
            session_id, user_id, utterance, reply, message_type,
            user_metadata=metadata,
            assistant_metadata={"processingTimeMs": processing_ms, "contextMessages": len(messages)}
        )

        turn_logger.info(
            "turn_completed",
            session_id=session_id,
            user_id=user_id,
            message_type=message_type.value,
            processing_ms=processing_ms,
            persisted=persisted
        )
        return TurnResult(
            message=reply,
            session_id=session_id,
            mode=MODE_OPENAI,
            transcription=transcription,
            persisted=persisted
        )

    def _persist_turn(
        self,
        session_id: str,
        user_id: str,
        utterance: str,
        reply: str,
        message_type: MessageType,
        user_metadata: Dict[str, Any],
        assistant_metadata: Dict[str, Any]
    ) -> bool:
        """Store the user message then the reply; a failure keeps what was written"""
        try:
            conversation = self.store.get_or_create(session_id, user_id)
            self.store.append_message(conversation.id, MessageRole.USER, utterance, message_type, user_metadata)
            self.store.append_message(conversation.id, MessageRole.ASSISTANT, reply, MessageType.TEXT, assistant_metadata)
            return True
        except StoreError as e:
            turn_logger.error(
                "turn_persistence_failed",
                session_id=session_id,
                user_id=user_id,
                code=e.code,
                reason=e.message,
                reply_returned=True
            )
            return False

    def _error_result(
        self,
        error: Exception,
        session_id: str,
        voice: bool = False,
        transcription: Optional[str] = None
    ) -> TurnResult:
        strategy = self.recovery.recover(error, voice=voice)
        code = error.code if isinstance(error, AssistantError) else "INTERNAL_ERROR"

        event = {
            "session_id": session_id,
            "code": code,
            "strategy": strategy.strategy_type,
            "suggested_action": strategy.suggested_action,
            **strategy.context,
        }
        if isinstance(error, GatewayError):
            turn_logger.warning("turn_failed", reason=error.message, **event)
        else:
            turn_logger.info("turn_rejected", **event)

        if voice and transcription is None:
            transcription = strategy.transcription_marker

        return TurnResult(
            message=strategy.message,
            session_id=session_id,
            mode=MODE_ERROR,
            transcription=transcription,
            error=code
        )
