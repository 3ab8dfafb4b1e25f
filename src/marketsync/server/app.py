"""HTTP surface: Alchemy webhook receiver and admin sync endpoints."""

from __future__ import annotations

import hmac
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Security, status
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ValidationError

from marketsync.core.config import AppConfig
from marketsync.core.errors import MarketSyncError
from marketsync.pipeline import Pipeline, open_pipeline

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


class IndexEventsRequest(BaseModel):
    """Explicit block range to (re)process."""
    fromBlock: int
    toBlock: int


class ReindexRequest(BaseModel):
    """Move the cursor back so the next pass starts at `fromBlock`."""
    fromBlock: int


def get_pipeline(request: Request) -> Pipeline:
    return request.app.state.pipeline


def require_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Security(bearer),
) -> None:
    token = request.app.state.pipeline.config.admin_token
    if not token:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin endpoints are disabled (no admin token configured)",
        )
    if credentials is None or not hmac.compare_digest(credentials.credentials, token):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

webhooks_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@webhooks_router.post("/alchemy")
async def alchemy_webhook(request: Request, pipeline: Pipeline = Depends(get_pipeline)):
    """Ingest a MINED_TRANSACTION or ADDRESS_ACTIVITY notification."""
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Body is not JSON")

    try:
        result = await pipeline.ingestor.ingest_payload(body)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception:
        logger.exception("Error processing Alchemy webhook")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Webhook processing failed"},
        )
    return {"success": True, **result.as_dict()}


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

admin_router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


@admin_router.post("/index-events")
async def index_events(req: IndexEventsRequest, pipeline: Pipeline = Depends(get_pipeline)):
    if req.fromBlock > req.toBlock:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="fromBlock must be <= toBlock",
        )
    try:
        result = await pipeline.coordinator.run(from_block=req.fromBlock, to_block=req.toBlock)
    except MarketSyncError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return {"success": True, **result.as_dict()}


@admin_router.get("/index-status")
async def index_status(pipeline: Pipeline = Depends(get_pipeline)) -> dict[str, Any]:
    return pipeline.status()


@admin_router.post("/reindex")
async def reindex(req: ReindexRequest, pipeline: Pipeline = Depends(get_pipeline)):
    pipeline.coordinator.reset_cursor(req.fromBlock - 1)
    try:
        result = await pipeline.coordinator.run()
    except MarketSyncError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return {"success": True, **result.as_dict()}


@admin_router.post("/update-missing-metadata")
async def update_missing_metadata(limit: int = 10, pipeline: Pipeline = Depends(get_pipeline)):
    return {"success": True, **(await pipeline.refresh_missing_metadata(limit))}


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def create_app(config: AppConfig | None = None, *, pipeline: Pipeline | None = None) -> FastAPI:
    """Build the FastAPI app.

    With `pipeline` given (tests), it is used as-is and not closed. Otherwise
    a pipeline is opened from `config` (or the environment) for the lifetime
    of the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if pipeline is not None:
            app.state.pipeline = pipeline
            yield
            return
        async with open_pipeline(config or AppConfig.from_env()) as opened:
            app.state.pipeline = opened
            yield

    app = FastAPI(
        title="marketsync",
        description="Marketplace chain-to-database sync",
        version="0.1.0",
        lifespan=lifespan,
    )
    if pipeline is not None:
        app.state.pipeline = pipeline

    app.include_router(webhooks_router)
    app.include_router(admin_router)

    @app.get("/")
    async def root():
        return {"name": "marketsync", "status": "running"}

    return app
