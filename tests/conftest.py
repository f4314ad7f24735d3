import os

# Keep the module-level engine away from the working directory during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.pop("OPENAI_API_KEY", None)

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session

from atom_assistant.db.config import build_engine
from atom_assistant.db.init import init_db
from atom_assistant.services.context_assembler import ContextAssembler
from atom_assistant.services.conversation_service import ConversationService
from atom_assistant.services.turn_orchestrator import TurnOrchestrator


class StubChatGateway:
    """Chat completion double recording every request."""

    def __init__(self, reply="Sure, I've added that for you."):
        self.reply = reply
        self.error = None
        self.calls = []
        self.configured = True

    async def complete(self, messages):
        self.calls.append([dict(m) for m in messages])
        if self.error is not None:
            raise self.error
        return self.reply


class StubTranscriptionGateway:
    """Transcription double recording every request."""

    def __init__(self, text="Schedule a site visit tomorrow"):
        self.text = text
        self.error = None
        self.calls = []
        self.configured = True

    async def transcribe(self, audio_bytes, filename="speech.webm", content_type="audio/webm"):
        self.calls.append({"audio": audio_bytes, "filename": filename, "content_type": content_type})
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def engine():
    test_engine = build_engine("sqlite:///:memory:", poolclass=StaticPool)
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as db:
        yield db


@pytest.fixture
def store(session):
    return ConversationService(session)


@pytest.fixture
def chat_gateway():
    return StubChatGateway()


@pytest.fixture
def transcription_gateway():
    return StubTranscriptionGateway()


@pytest.fixture
def orchestrator(store, chat_gateway, transcription_gateway):
    return TurnOrchestrator(
        store=store,
        assembler=ContextAssembler(store, system_prompt="You are Atom."),
        chat_gateway=chat_gateway,
        transcription_gateway=transcription_gateway,
    )
