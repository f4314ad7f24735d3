"""
Conversation Summarization Skill

Produces the rolling digest stored on a conversation every time its message
count reaches a multiple of the auto-summarize threshold.

The digest is descriptive (message count, who spoke, time span). It can be
swapped for an LLM-generated summary without changing the trigger.
"""

from typing import List, Optional, Sequence, Protocol
from dataclasses import dataclass, field
from datetime import datetime
import logging

from atom_assistant.config import DEFAULT_AUTO_SUMMARIZE_AFTER, SUMMARY_WINDOW

logger = logging.getLogger(__name__)


class SummarizableMessage(Protocol):
    role: str
    message_type: str
    created_at: datetime


@dataclass
class ConversationSummary:
    """Summarized conversation window"""
    summary: str
    message_count: int
    key_points: List[str] = field(default_factory=list)


class ConversationSummarizationSkill:
    """
    Skill for summarizing conversation windows

    Trigger:
    - Exactly when the message count is a positive multiple of the threshold
    Content:
    - Count of messages in the window, role breakdown, voice turns, time span
    """

    def __init__(
        self,
        summarize_after: int = DEFAULT_AUTO_SUMMARIZE_AFTER,
        summary_window: int = SUMMARY_WINDOW
    ):
        """
        Initialize summarization skill

        Args:
            summarize_after: Default message-count threshold
            summary_window: Number of most recent messages fed to the summary
        """
        self.summarize_after = summarize_after
        self.summary_window = summary_window

    def should_summarize(self, message_count: int, threshold: Optional[int] = None) -> bool:
        """
        Determine if conversation should be summarized

        Args:
            message_count: Total number of messages in conversation
            threshold: Per-user threshold, falls back to the skill default

        Returns:
            True when message_count is an exact positive multiple of the threshold
        """
        threshold = threshold or self.summarize_after
        if threshold <= 0 or message_count <= 0:
            return False
        return message_count % threshold == 0

    def summarize(self, messages: Sequence[SummarizableMessage]) -> ConversationSummary:
        """
        Summarize a window of messages (oldest first)

        Args:
            messages: Messages to describe

        Returns:
            ConversationSummary with the digest text
        """
        if not messages:
            return ConversationSummary(summary="No messages to summarize.", message_count=0)

        key_points = self._extract_key_points(messages)
        started = messages[0].created_at
        ended = messages[-1].created_at

        summary = (
            f"Summary of {len(messages)} messages from "
            f"{started.isoformat()} to {ended.isoformat()}"
        )
        if key_points:
            summary += ":\n" + "\n".join(f"- {point}" for point in key_points)

        logger.info(f"Summarized conversation window of {len(messages)} messages")

        return ConversationSummary(
            summary=summary,
            message_count=len(messages),
            key_points=key_points
        )

    def _extract_key_points(self, messages: Sequence[SummarizableMessage]) -> List[str]:
        """Count who spoke and how"""
        by_role = {"user": 0, "assistant": 0, "system": 0}
        voice_turns = 0

        for msg in messages:
            by_role[msg.role] = by_role.get(msg.role, 0) + 1
            if msg.message_type == "voice":
                voice_turns += 1

        key_points = []
        if by_role["user"]:
            key_points.append(f"{by_role['user']} user message(s)")
        if by_role["assistant"]:
            key_points.append(f"{by_role['assistant']} assistant message(s)")
        if by_role["system"]:
            key_points.append(f"{by_role['system']} system note(s)")
        if voice_turns:
            key_points.append(f"{voice_turns} voice turn(s)")

        return key_points


# Singleton instance for easy import
conversation_summarization_skill = ConversationSummarizationSkill()
