"""Main FastAPI application for the Atom assistant backend."""
from fastapi import FastAPI
import logging

from atom_assistant import __version__
from atom_assistant.clients.openai_client import chat_gateway, transcription_gateway
from atom_assistant.db.init import init_db
from atom_assistant.middleware.cors import add_cors_middleware
from atom_assistant.routers import ai, conversation
from atom_assistant.utils.logger import configure_logging

configure_logging()
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Atom Personal AI Assistant API",
    description="Voice and text chat with persistent conversation memory",
    version=__version__,
)

# Add CORS middleware
add_cors_middleware(app)


@app.on_event("startup")
async def startup_event():
    """Initialize database tables on startup."""
    try:
        init_db()
        logger.info("[SUCCESS] Database tables initialized successfully.")
    except Exception as e:
        logger.warning(f"[WARNING] Database initialization failed: {str(e)}")
        logger.warning("[WARNING] Server will continue, conversation memory may be unavailable.")


@app.on_event("shutdown")
async def shutdown_event():
    """Release pooled OpenAI connections."""
    await chat_gateway.aclose()
    await transcription_gateway.aclose()


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


@app.get("/")
async def root():
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to the Atom assistant API",
        "version": __version__,
        "docs": "/docs",
        "health": "/api/v1/ai/health",
    }


app.include_router(ai.router, prefix="/api/v1")  # /api/v1/ai/text-command, /api/v1/ai/voice-command
app.include_router(conversation.router, prefix="/api/v1")  # /api/v1/conversation/...


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "atom_assistant.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
