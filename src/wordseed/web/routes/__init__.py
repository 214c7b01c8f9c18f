"""Route handlers for the Web API."""

from wordseed.web.routes.health import router as health_router
from wordseed.web.routes.practice import router as practice_router

__all__ = [
    "health_router",
    "practice_router",
]
