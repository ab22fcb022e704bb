"""Main application entry point."""
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
import redis
import httpx
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from config import (
    API_VERSION,
    MEDIA_URL_PREFIX,
    RATE_LIMIT_ENABLED,
    REDIS_URL,
    SLIP_VERIFY_TIMEOUT,
    UPLOAD_DIR,
)
from database import init_db, engine
from monitoring import init_profiling
from logging_config import setup_logging
from routers import admin, cart, orders, products, store, auth as auth_router
from redis_rate_limiter import RedisRateLimiter

setup_logging()
logger = logging.getLogger(__name__)

# Sync client shared by the rate limiter middleware and the cart counter
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting application...")

    init_db()

    RedisInstrumentor().instrument(redis_client=redis_client)
    app.state.redis_client = redis_client
    logger.info("Redis client initialized")

    http_client = httpx.AsyncClient(timeout=SLIP_VERIFY_TIMEOUT)
    HTTPXClientInstrumentor().instrument_client(http_client)
    app.state.http_client = http_client
    logger.info("HTTP client initialized")

    init_profiling()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    await http_client.aclose()
    redis_client.close()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Community Storefront Service",
    version=API_VERSION,
    lifespan=lifespan
)

if RATE_LIMIT_ENABLED:
    app.add_middleware(RedisRateLimiter, redis_client=redis_client)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

FastAPIInstrumentor.instrument_app(app)
SQLAlchemyInstrumentor().instrument(engine=engine)

# Uploaded payment slips
os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount(MEDIA_URL_PREFIX, StaticFiles(directory=UPLOAD_DIR), name="media")


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


app.include_router(auth_router.router)
app.include_router(products.router)
app.include_router(store.router)
app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(admin.router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
