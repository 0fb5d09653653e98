"""FastAPI application for the merchant support assistant."""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from merchant_desk.api.routers import health, messages
from merchant_desk.infra.config import config
from merchant_desk.infra.logging import setup_logging
from merchant_desk.infra.middleware import RequestIDMiddleware, RequestLoggingMiddleware
from merchant_desk.services.orchestrator import get_orchestrator

logger = logging.getLogger("merchant_desk")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    setup_logging()
    logger.info("Application starting up")

    orchestrator = get_orchestrator()
    try:
        await orchestrator.resolver.refresh()
    except Exception:
        # Readiness stays false until a periodic refresh succeeds
        logger.exception("Initial channel mapping load failed")
    orchestrator.resolver.start(config.MAPPING_REFRESH_SECONDS)
    if orchestrator.knowledge_base is not None:
        await orchestrator.knowledge_base.load()

    yield

    logger.info("Application shutting down")
    await orchestrator.resolver.stop()
    await orchestrator.drain()

    from merchant_desk.infra.database import engine
    from merchant_desk.infra.document_store import document_store
    await document_store.close()
    engine.dispose()


app = FastAPI(
    title="Merchant Desk API",
    description="""
    Merchant Desk answers merchant support questions coming from chat channels
    (Slack, Telegram, WhatsApp) with tenant-isolated payment data.

    ## Authentication

    The inbound endpoint requires the adapter's shared key via:
    - Header: `X-API-Key: <key>`
    - Query parameter: `?api_key=<key>`
    """,
    version="1.0.0",
    lifespan=lifespan,
    tags_metadata=[
        {
            "name": "Messages",
            "description": "Answer inbound merchant messages",
        },
        {
            "name": "Health",
            "description": "Health check and monitoring endpoints",
        },
    ],
)

app.add_middleware(RequestIDMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(messages.router)
app.include_router(health.router)


# Error handlers
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions."""
    error_id = str(uuid.uuid4())
    logger.error(f"Unhandled exception: {exc}", exc_info=True, extra={"error_id": error_id})
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error. Error ID: {error_id}"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        timeout_keep_alive=30,
        timeout_graceful_shutdown=30,
    )
