"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_settings
from .routers import chat, ussd, voice_ws


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings = get_settings()
    settings.ensure_data_dirs()
    logging.info(f"HEAL API starting up (sessions: {settings.session_backend})...")
    if not settings.groq_api_key:
        logging.warning("GROQ_API_KEY not set, chat replies will come from the fallback phrasebook")
    yield
    logging.info("HEAL API shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="HEAL API",
        description="GBV support chat: web chat, USSD and narrated replies",
        version=__version__,
        lifespan=lifespan,
    )

    # Configure CORS for frontend access
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(chat.router, prefix="/chat", tags=["chat"])
    app.include_router(ussd.router, prefix="/ussd", tags=["ussd"])
    app.include_router(voice_ws.router, prefix="/voice", tags=["voice"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app
