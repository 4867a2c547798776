"""CORS configuration for the task API."""
import logging
import os

from fastapi.middleware.cors import CORSMiddleware

from taskseries.config import ENVIRONMENT

logger = logging.getLogger(__name__)

FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

# Base allowed origins for development
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
]

# Add production frontend URL if provided
if FRONTEND_URL and FRONTEND_URL not in ALLOWED_ORIGINS:
    ALLOWED_ORIGINS.append(FRONTEND_URL)


def add_cors_middleware(app):
    """Add CORS middleware to the FastAPI application."""
    if ENVIRONMENT == "production":
        logger.info(f"[PROD] Using production CORS with origin: {FRONTEND_URL}")
        origins = [FRONTEND_URL]
    else:
        logger.info(f"[DEV] Using development CORS with origins: {ALLOWED_ORIGINS}")
        origins = ALLOWED_ORIGINS

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
