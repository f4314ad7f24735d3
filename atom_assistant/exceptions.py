"""
Error taxonomy for conversational turns.

Every error carries a stable machine-readable code, a human message and
optional details. The Turn Orchestrator converts these into uniform
``mode="error"`` responses; the conversation endpoints map them to HTTP
status codes.
"""

from typing import Any, Dict, Optional


class AssistantError(Exception):
    """Base exception for turn processing errors"""
    code = "ASSISTANT_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)


class InputValidationError(AssistantError):
    """Missing or empty message, audio or settings value"""
    code = "VALIDATION_ERROR"


class EmptyAudio(InputValidationError):
    code = "EMPTY_AUDIO"


class EmptyTranscription(AssistantError):
    """Audio decoded to no usable text"""
    code = "EMPTY_TRANSCRIPTION"


class GatewayError(AssistantError):
    """Failure talking to an upstream provider"""
    code = "GATEWAY_ERROR"


class GatewayUnavailable(GatewayError):
    """Provider unreachable or misconfigured (e.g. missing credentials)"""
    code = "GATEWAY_UNAVAILABLE"


class GatewayRejected(GatewayError):
    """Provider answered with an error for the given input"""
    code = "GATEWAY_REJECTED"


class TranscriptionFailed(GatewayRejected):
    code = "TRANSCRIPTION_FAILED"


class CompletionFailed(GatewayRejected):
    code = "COMPLETION_FAILED"


class StoreError(AssistantError):
    code = "STORE_ERROR"


class NotFound(StoreError):
    code = "NOT_FOUND"


class StorageUnavailable(StoreError):
    """Persistence layer failure; never retried by the store itself"""
    code = "STORAGE_UNAVAILABLE"


# GatewayUnavailable details["reason"] values
REASON_UNCONFIGURED = "unconfigured"
REASON_UNREACHABLE = "unreachable"
