"""
Error Recovery Skill

Turns turn-processing errors into the apologetic, user-facing messages
returned with ``mode="error"``.

Every strategy also names the marker shown in place of a transcription when
a voice turn fails, so voice and text errors keep the same response shape.
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass, field
import logging

from atom_assistant.exceptions import (
    AssistantError,
    EmptyAudio,
    EmptyTranscription,
    GatewayRejected,
    GatewayUnavailable,
    InputValidationError,
    REASON_UNCONFIGURED,
)

logger = logging.getLogger(__name__)

NO_AUDIO_MARKER = "[No Audio]"
NO_SPEECH_MARKER = "[No Speech Detected]"
FAILED_MARKER = "[Processing Failed]"


@dataclass
class RecoveryStrategy:
    """Strategy for recovering from an error"""
    strategy_type: str  # "clarify", "retry", "abort"
    message: str  # Human-friendly message
    transcription_marker: str = FAILED_MARKER
    suggested_action: Optional[str] = None  # Suggested next step
    context: Dict[str, Any] = field(default_factory=dict)


class ErrorRecoverySkill:
    """
    Skill for handling turn errors and generating recovery strategies

    Handles:
    - Missing message or audio -> Ask the user to try again
    - Empty transcription -> Ask the user to speak again or type
    - Provider unreachable or misconfigured -> Graceful apology
    - Provider rejected the input -> Explain and suggest an alternative
    """

    def handle_validation_error(self, field_name: str, issue: str) -> RecoveryStrategy:
        """
        Handle missing or malformed input

        Args:
            field_name: The field that failed validation
            issue: Description of the validation issue
        """
        return RecoveryStrategy(
            strategy_type="clarify",
            message=f"There's an issue with the {field_name}: {issue}. Could you try again?",
            context={"field": field_name, "issue": issue}
        )

    def handle_empty_audio(self) -> RecoveryStrategy:
        return RecoveryStrategy(
            strategy_type="clarify",
            message="I didn't receive any audio. Please check your microphone permissions and try again.",
            transcription_marker=NO_AUDIO_MARKER
        )

    def handle_empty_transcription(self) -> RecoveryStrategy:
        return RecoveryStrategy(
            strategy_type="clarify",
            message="I couldn't make out any words in that recording. Please try speaking again or type your message.",
            transcription_marker=NO_SPEECH_MARKER
        )

    def handle_gateway_unavailable(self, error: GatewayUnavailable, voice: bool = False) -> RecoveryStrategy:
        """
        Handle an unreachable or unconfigured provider

        Args:
            error: The gateway error
            voice: Whether the failed turn was a voice turn
        """
        if error.details.get("reason") == REASON_UNCONFIGURED:
            message = (
                "I can hear you, but I need an OpenAI API key to process voice commands."
                if voice else
                "I'm not fully set up yet: my language service has no API key configured."
            )
        else:
            message = "I'm having trouble reaching my language service right now. Please try again in a moment."

        return RecoveryStrategy(
            strategy_type="retry",
            message=message,
            suggested_action="retry",
            context={"service": error.details.get("service")}
        )

    def handle_gateway_rejected(self, error: GatewayRejected, voice: bool = False) -> RecoveryStrategy:
        if voice:
            message = (
                f"I had trouble processing your voice command: {error.message}. "
                "Please try speaking clearly or use text instead."
            )
        else:
            message = f"I'm experiencing technical difficulties: {error.message}"

        return RecoveryStrategy(
            strategy_type="abort",
            message=message,
            suggested_action="use_text" if voice else None,
            context={"status": error.details.get("status")}
        )

    def handle_system_error(self, error_message: str = "") -> RecoveryStrategy:
        """
        Handle unexpected system error

        Args:
            error_message: Optional error details (will be logged, not shown to user)
        """
        if error_message:
            logger.error(f"System error: {error_message}")

        return RecoveryStrategy(
            strategy_type="abort",
            message="I'm sorry, something went wrong. Please try again in a moment."
        )

    def recover(self, error: Exception, voice: bool = False) -> RecoveryStrategy:
        """Pick the strategy for any error raised during a turn"""
        if isinstance(error, EmptyAudio):
            return self.handle_empty_audio()
        if isinstance(error, EmptyTranscription):
            return self.handle_empty_transcription()
        if isinstance(error, InputValidationError):
            return self.handle_validation_error(error.details.get("field", "message"), error.message)
        if isinstance(error, GatewayUnavailable):
            return self.handle_gateway_unavailable(error, voice=voice)
        if isinstance(error, GatewayRejected):
            return self.handle_gateway_rejected(error, voice=voice)
        if isinstance(error, AssistantError):
            return self.handle_system_error(f"{error.code}: {error.message}")
        return self.handle_system_error(str(error))


# Singleton instance for easy import
error_recovery_skill = ErrorRecoverySkill()
