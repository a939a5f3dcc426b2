"""
Main application entry point for the Personal Inventory API.

This module initializes the FastAPI application, configures logging and
CORS, initializes the rate limiter with a Redis backend, maps domain
errors to HTTP responses, and includes the routers for authentication,
users, categories, locations, containers, items, AI helpers and barcodes.

Modules:
- FastAPI: Web framework
- CORSMiddleware: Middleware for handling CORS
- FastAPILimiter: Rate limiting
- redis.asyncio: Async Redis client
- fakeredis.aioredis: In-process Redis when no server is reachable
- app.database: Database engine
- app.errors: Domain errors and their HTTP status codes
- app.core: Application settings and logging setup
"""

import logging
from contextlib import asynccontextmanager

from fakeredis.aioredis import FakeRedis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_limiter import FastAPILimiter
import redis.asyncio as redis

from app.database import engine
from app import models
from app.ai import router as ai_router
from app.auth import router as auth_router
from app.barcodes import router as barcode_router
from app.categories import router as categories_router
from app.containers import router as containers_router
from app.core import configure_logging, get_settings
from app.errors import InventoryError
from app.items import router as items_router
from app.locations import router as locations_router
from app.users import router as users_router

settings = get_settings()
configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger("inventory")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown.

    Creates missing tables and initializes the rate limiter with the
    Redis backend, falling back to an in-process FakeRedis if Redis is
    unavailable (e.g., during tests or offline).
    """
    models.Base.metadata.create_all(bind=engine)
    redis_client = redis.from_url(
        settings.REDIS_URL, encoding="utf-8", decode_responses=True
    )
    try:
        await FastAPILimiter.init(redis_client)
    except Exception:
        logger.warning(
            "Redis unavailable at %s, rate limiting in process", settings.REDIS_URL
        )
        await FastAPILimiter.init(FakeRedis(decode_responses=True))
    logger.info("Personal Inventory API started")
    yield
    await FastAPILimiter.close()


# Initialize FastAPI application
app = FastAPI(title="Personal Inventory API", lifespan=lifespan)

# Configure CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    """
    Turn a domain error into its JSON response.

    Args:
        request (Request): Request that raised the error.
        exc (InventoryError): Raised domain error.

    Returns:
        JSONResponse: Error body with the status code of the error class.
    """
    if exc.status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    """
    Answer any unhandled error with a generic 500 body.

    The traceback is logged here with the request method and path.
    Starlette re-raises the exception once this response is sent, so the
    ASGI server logs it a second time without that context.

    Args:
        request (Request): Incoming request.
        exc (Exception): The unhandled error.

    Returns:
        JSONResponse: ``{"detail": "Internal server error"}`` with status 500.
    """
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Include routers for application areas
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(categories_router)
app.include_router(locations_router)
app.include_router(containers_router)
app.include_router(items_router)
app.include_router(ai_router)
app.include_router(barcode_router)


@app.get("/")
def root():
    """
    Root endpoint for the API.

    Returns a simple JSON message directing users to the Swagger UI.

    Returns:
        dict: JSON message with information about the API
    """
    return {"msg": "Personal Inventory API. Visit /docs for Swagger UI"}


@app.get("/health")
def health():
    """Liveness probe."""
    return {"status": "ok"}
