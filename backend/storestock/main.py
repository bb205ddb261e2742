"""storestock — FastAPI ASGI entry point."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storestock.api.v1.router import api_router
from storestock.config import get_settings
from storestock.core.logging import configure_logging
from storestock.core.redis import close_redis
from storestock.core.responses import register_error_handlers

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Logging on startup; Redis pool closed on shutdown."""
    configure_logging(settings.LOG_LEVEL)
    logger.info("storestock starting (%s)", settings.ENVIRONMENT)
    yield
    await close_redis()


app = FastAPI(
    title="storestock",
    description="Multi-location inventory movement ledger",
    version="0.1.0",
    docs_url="/api/v1/docs",
    redoc_url="/api/v1/redoc",
    openapi_url="/api/v1/openapi.json",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_error_handlers(app)

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health():
    """Health check for load balancers and Docker."""
    return {"status": "ok", "service": "storestock"}
