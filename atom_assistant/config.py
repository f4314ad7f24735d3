"""Runtime configuration for the Atom assistant backend."""
import os
from dotenv import load_dotenv

load_dotenv()

# OpenAI
OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY")
OPENAI_BASE_URL = os.environ.get("OPENAI_BASE_URL", "https://api.openai.com")
CHAT_MODEL = os.environ.get("CHAT_MODEL", "gpt-3.5-turbo")
TRANSCRIPTION_MODEL = os.environ.get("TRANSCRIPTION_MODEL", "whisper-1")
CHAT_MAX_TOKENS = int(os.environ.get("CHAT_MAX_TOKENS", "500"))
CHAT_TEMPERATURE = float(os.environ.get("CHAT_TEMPERATURE", "0.7"))
OPENAI_TIMEOUT_SECONDS = float(os.environ.get("OPENAI_TIMEOUT_SECONDS", "60"))

SYSTEM_PROMPT = os.environ.get(
    "SYSTEM_PROMPT",
    "You are Atom, a helpful personal AI assistant. Be friendly, conversational, "
    "and genuinely helpful. Use the recent conversation to resolve references. "
    "Keep responses concise but informative.",
)

# Conversation memory
DEFAULT_CONTEXT_WINDOW = int(os.environ.get("DEFAULT_CONTEXT_WINDOW", "10"))
DEFAULT_AUTO_SUMMARIZE_AFTER = int(os.environ.get("DEFAULT_AUTO_SUMMARIZE_AFTER", "20"))
SUMMARY_WINDOW = int(os.environ.get("SUMMARY_WINDOW", "20"))
MEMORY_RETENTION_DAYS = int(os.environ.get("MEMORY_RETENTION_DAYS", "30"))

# Requests without a userId are attributed to this user
DEFAULT_USER_ID = os.environ.get("DEFAULT_USER_ID", "user")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
