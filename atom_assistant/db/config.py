"""Database configuration for the Atom assistant backend."""
from typing import Generator
from sqlmodel import create_engine, Session
import os
import logging
from dotenv import load_dotenv
from sqlalchemy import event
from sqlalchemy.engine import Engine

load_dotenv()

logger = logging.getLogger(__name__)

# Conversation memory lives in PostgreSQL in production, SQLite for local dev
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./atom_assistant.db")
IS_SQLITE = DATABASE_URL.startswith("sqlite")


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine, enabling foreign keys and WAL for SQLite."""
    is_sqlite = database_url.startswith("sqlite")
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    connect_args.update(kwargs.pop("connect_args", {}))

    new_engine = create_engine(database_url, echo=False, connect_args=connect_args, **kwargs)

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def set_sqlite_pragma(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            # Messages cascade with their conversation
            cursor.execute("PRAGMA foreign_keys=ON")
            if ":memory:" not in database_url:
                cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

    return new_engine


if IS_SQLITE:
    logger.info(f"[DB CONFIG] Using SQLite database: {DATABASE_URL}")
else:
    logger.info("[DB CONFIG] Using PostgreSQL database")

engine = build_engine(DATABASE_URL)


def get_session() -> Generator[Session, None, None]:
    """Dependency for getting database sessions."""
    with Session(engine) as session:
        yield session
