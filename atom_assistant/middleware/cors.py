"""CORS configuration for the web and mobile frontends."""
from fastapi.middleware.cors import CORSMiddleware
import logging
import os

logger = logging.getLogger(__name__)

ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "")
# Comma separated list of extra origins allowed in production
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "")

# Local development servers (web build and Expo dev tools)
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8081",
    "http://localhost:19006",
]

for origin in [FRONTEND_URL, *CORS_ORIGINS.split(",")]:
    origin = origin.strip()
    if origin and origin not in ALLOWED_ORIGINS:
        ALLOWED_ORIGINS.append(origin)


def add_cors_middleware(app):
    """Add CORS middleware to the FastAPI application."""
    if ENVIRONMENT == "production" and not (FRONTEND_URL or CORS_ORIGINS):
        # Native clients send no Origin header; browsers are allowed from anywhere
        logger.info("[CORS] Production without configured origins, allowing all origins")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        logger.info(f"[CORS] Allowed origins: {ALLOWED_ORIGINS}")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
