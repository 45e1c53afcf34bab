"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

# Logging constants defined here (not in constants/) because logging.basicConfig()
# must run before any module imports that might create loggers.
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logging.basicConfig(
    format=LOG_FORMAT,
    datefmt=DATE_FORMAT,
    level=logging.INFO,
)

# Unify uvicorn loggers with app format
for uvicorn_logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
    uvicorn_logger = logging.getLogger(uvicorn_logger_name)
    uvicorn_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    uvicorn_logger.addHandler(handler)

from qnabot.api.deps import close_http_client, get_gateway, get_settings  # noqa: E402
from qnabot.api.routers import conversations, health  # noqa: E402
from qnabot.dialog.gateway import UpstreamUnavailable  # noqa: E402
from qnabot.state import get_app_state  # noqa: E402

logger = logging.getLogger(__name__)


async def _check_upstream() -> bool:
    """Check that the search service can be reached.

    Returns:
        True if a probe search succeeded, False otherwise.
    """
    try:
        await get_gateway().ping()
    except UpstreamUnavailable as e:
        logger.error(f"Failed to connect to the search service: {e}")
        return False
    return True


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan handler for startup and shutdown events.

    On startup:
    - Logs the loaded configuration (without secrets)
    - Probes the search service and records readiness

    On shutdown:
    - Closes the shared HTTP client
    """
    settings = get_settings()
    logger.info(f"Starting with config: {settings.describe()}")

    get_app_state().upstream_ready = await _check_upstream()
    if not get_app_state().upstream_ready:
        logger.warning("Search service not reachable - /healthz will report unavailable")

    logger.info("QnA bot started")

    yield

    await close_http_client()


app = FastAPI(
    title="QnA bot",
    description="Answers questions from a set of knowledge bases",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(health.router)
app.include_router(conversations.router)
