"""
BoldMove Web - FastAPI application.

Serves the journey API under /api for the mobile client.
Uses Supabase Auth bearer tokens for authentication.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boldmove import __version__
from boldmove.config import configure_logging, settings
from journey.api import router as journey_router

logger = logging.getLogger(__name__)

app = FastAPI(title="BoldMove", version=__version__)


@app.on_event("startup")
async def startup_event():
    """Configure logging and log configuration on startup."""
    from boldmove.llm.prompt_logger import get_logging_status

    configure_logging()
    status = get_logging_status()
    logger.info("BoldMove starting up...")
    logger.info(f"  Environment: {settings.boldmove_env}")
    logger.info(
        f"  Prompt file logging: {status['file_logging']} "
        f"(BOLDMOVE_LOG_PROMPTS={status['env_BOLDMOVE_LOG_PROMPTS']})"
    )


# CORS for the Expo web dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:8081",
        "http://127.0.0.1:8081",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(journey_router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": __version__}


def create_app() -> FastAPI:
    """Create and return the FastAPI application."""
    return app
