"""HEAL API Server - Main Entry Point."""

import uvicorn

from src.heal_bot.api import create_app
from src.heal_bot.config import get_settings


def main():
    """Run the HEAL API server."""
    settings = get_settings()

    app = create_app()

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
