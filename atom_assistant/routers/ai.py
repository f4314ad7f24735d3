"""
AI Turn Router

Text and voice entry points for conversational turns. Both endpoints always
answer 200 with the same response shape; failures are reported through
``mode: "error"`` and an explanatory message.

Request Flow:
1. Validate the request body at the boundary (text bodies are parsed by hand)
2. Delegate to the Turn Orchestrator (transcribe, assemble, complete, persist)
3. Return the reply with the resolved conversation id
"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import ValidationError

import logging

from atom_assistant.clients.openai_client import (
    ChatCompletionGateway,
    TranscriptionGateway,
    get_chat_gateway,
    get_transcription_gateway,
)
from atom_assistant.exceptions import InputValidationError
from atom_assistant.routers.conversation import get_conversation_service
from atom_assistant.schemas.turn import HealthResponse, TextTurnRequest, TurnResponse, VoiceTurnResponse
from atom_assistant.services.context_assembler import ContextAssembler
from atom_assistant.services.conversation_service import ConversationService
from atom_assistant.services.turn_orchestrator import TurnOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai", tags=["ai"])


def get_turn_orchestrator(
    store: ConversationService = Depends(get_conversation_service),
    chat_gateway: ChatCompletionGateway = Depends(get_chat_gateway),
    transcription_gateway: TranscriptionGateway = Depends(get_transcription_gateway)
) -> TurnOrchestrator:
    """Dependency wiring one orchestrator per request."""
    return TurnOrchestrator(
        store=store,
        assembler=ContextAssembler(store),
        chat_gateway=chat_gateway,
        transcription_gateway=transcription_gateway
    )


@router.get("/health", response_model=HealthResponse)
async def health_check(chat_gateway: ChatCompletionGateway = Depends(get_chat_gateway)):
    """Service health and whether OpenAI credentials are configured."""
    return HealthResponse(
        status="ok",
        service="Personal AI Assistant",
        openai_configured=chat_gateway.configured,
        timestamp=datetime.utcnow()
    )


def _string_field(payload: Any, key: str) -> Optional[str]:
    value = payload.get(key) if isinstance(payload, dict) else None
    return value if isinstance(value, str) else None


@router.post(
    "/text-command",
    response_model=TurnResponse,
    openapi_extra={
        "requestBody": {
            "content": {"application/json": {"schema": TextTurnRequest.model_json_schema(by_alias=True)}}
        }
    },
)
async def text_command(
    request: Request,
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator)
):
    """
    Answer a text message within the caller's conversation.

    A missing, unparseable or wrongly typed body is answered with the
    uniform turn response in error mode.
    """
    payload: Any = None
    body_bytes = await request.body()
    if body_bytes:
        try:
            payload = await request.json()
        except ValueError:
            logger.info("Text command body is not valid JSON")
            payload = None

    user_id = _string_field(payload, "userId")
    conversation_id = _string_field(payload, "conversationId")

    try:
        turn = TextTurnRequest.model_validate(payload if isinstance(payload, dict) else {})
    except ValidationError as e:
        first = e.errors()[0]
        field_name = str(first["loc"][-1]) if first.get("loc") else "message"
        result = orchestrator.reject(
            InputValidationError(first.get("msg", "Invalid value"), details={"field": field_name}),
            user_id=user_id,
            conversation_id=conversation_id
        )
        return TurnResponse.from_result(result)

    result = await orchestrator.handle_text(
        message=turn.message,
        user_id=turn.user_id,
        conversation_id=turn.conversation_id
    )
    return TurnResponse.from_result(result)


@router.post("/voice-command", response_model=VoiceTurnResponse)
async def voice_command(
    audio: Optional[UploadFile] = File(None),
    user_id: Optional[str] = Form(None, alias="userId"),
    conversation_id: Optional[str] = Form(None, alias="conversationId"),
    orchestrator: TurnOrchestrator = Depends(get_turn_orchestrator)
):
    """Transcribe an uploaded recording and answer it."""
    audio_bytes = b""
    filename = None
    content_type = None
    if audio is not None:
        try:
            audio_bytes = await audio.read()
            filename = audio.filename
            content_type = audio.content_type
        finally:
            await audio.close()

    logger.info(f"Voice request received: {len(audio_bytes)} bytes ({content_type or 'no type'})")

    result = await orchestrator.handle_voice(
        audio_bytes=audio_bytes,
        user_id=user_id,
        conversation_id=conversation_id,
        filename=filename,
        content_type=content_type
    )
    return VoiceTurnResponse.from_result(result)
