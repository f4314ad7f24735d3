"""Initialize database tables."""
import logging
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

# Imported for their side effect of registering tables on SQLModel.metadata
from atom_assistant.models.conversation import Conversation  # noqa: F401
from atom_assistant.models.message import Message  # noqa: F401
from atom_assistant.models.user_settings import UserSettings  # noqa: F401

logger = logging.getLogger(__name__)


def init_db(target: Optional[Engine] = None):
    """Create all tables in the database."""
    if target is None:
        from atom_assistant.db.config import engine as target

    logger.info("[DB INIT] Creating all tables...")
    SQLModel.metadata.create_all(target)
    logger.info("[DB INIT] Tables created successfully.")


if __name__ == "__main__":
    init_db()
    print("Database tables created successfully.")
