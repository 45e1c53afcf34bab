"""Liveness and readiness endpoints."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from qnabot.api.deps import get_gateway
from qnabot.clients.aggregate import AggregateGateway
from qnabot.dialog.gateway import UpstreamUnavailable
from qnabot.state import get_app_state

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness check."""
    return {"status": "healthy"}


@router.get("/healthz")
async def readiness_check(gateway: AggregateGateway = Depends(get_gateway)) -> JSONResponse:
    """Readiness check: 200 once the search service has been reached, else 503."""
    app_state = get_app_state()
    if not app_state.upstream_ready:
        try:
            await gateway.ping()
            app_state.upstream_ready = True
        except UpstreamUnavailable as e:
            logger.warning(f"Readiness check failed: {e}")

    if app_state.upstream_ready:
        return JSONResponse(status_code=200, content={"status": "ready"})
    return JSONResponse(status_code=503, content={"status": "unavailable"})
