"""
Context Assembler

Builds the exact ordered message list handed to the chat completion gateway:

    [system prompt] + [last N stored messages, oldest first] + [new user message]

N is the user's context window size (settings default 10, 0 when the user
disabled context awareness). Content is passed through whole and nothing
time-dependent is injected, so the same history and utterance always
assemble to the same list.
"""

from typing import Dict, List
import logging

from atom_assistant.config import DEFAULT_CONTEXT_WINDOW, SYSTEM_PROMPT
from atom_assistant.exceptions import StorageUnavailable
from atom_assistant.models.message import MessageRole
from atom_assistant.services.conversation_service import ConversationService

logger = logging.getLogger(__name__)


class ContextAssembler:
    """Assembles completion requests from stored conversation history"""

    def __init__(
        self,
        store: ConversationService,
        system_prompt: str = SYSTEM_PROMPT,
        default_window: int = DEFAULT_CONTEXT_WINDOW
    ):
        self.store = store
        self.system_prompt = system_prompt
        self.default_window = default_window

    def window_size(self, user_id: str) -> int:
        """Number of stored messages to include for this user"""
        settings = self.store.get_or_create_settings(user_id)
        if not settings.enable_context_awareness:
            return 0
        return settings.context_window_size or self.default_window

    def assemble(self, session_id: str, user_id: str, utterance: str) -> List[Dict[str, str]]:
        """
        Assemble the message list for a new user utterance

        Args:
            session_id: Conversation correlation key
            user_id: Owner whose settings choose the window size
            utterance: The new user message (not yet persisted)

        Returns:
            List of {"role", "content"} dicts, system prompt first
        """
        try:
            window = self.window_size(user_id)
            history = self.store.recent_messages(session_id, window)
        except StorageUnavailable as e:
            # Answer without memory rather than failing the turn
            logger.warning(f"History unavailable for session {session_id}, assembling without it: {e.message}")
            history = []

        messages = [{"role": MessageRole.SYSTEM.value, "content": self.system_prompt}]
        messages.extend({"role": msg.role, "content": msg.content} for msg in history)
        messages.append({"role": MessageRole.USER.value, "content": utterance})

        logger.debug(f"Assembled {len(messages)} messages for session {session_id}")
        return messages
