"""FastAPI application factory.

Main entry point for the wordseed Web API.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wordseed import __version__
from wordseed.config.app_config import load_app_config
from wordseed.core.reference_data import load_hsk_registry
from wordseed.db.database import init_db
from wordseed.web.routes import health_router, practice_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup/shutdown events."""
    config = load_app_config()
    db_path = app.state.db_path or config.db_path
    init_db(db_path)

    hsk_path = config.paths.get("hsk_data")
    hsk = load_hsk_registry(Path(hsk_path) if hsk_path else None)

    logger.info("api_startup", db_path=str(db_path), hsk_words=len(hsk))
    yield

    queue = getattr(app.state, "pregeneration_queue", None)
    if queue is not None:
        await queue.stop()
    logger.info("api_shutdown")


def create_app(db_path: Path | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        db_path: Database file, overriding the configured path

    Returns:
        Configured FastAPI app instance
    """
    app = FastAPI(
        title="wordseed API",
        description="Adaptive vocabulary practice engine",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.db_path = db_path
    app.state.pregeneration_queue = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(practice_router)

    return app


# Default app instance for uvicorn
app = create_app()
