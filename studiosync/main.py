import logging
import os
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from . import models  # noqa: F401
from .config import DEDUP_BACKEND, validate_calendar_settings
from .database import Base, engine
from .domain.bookings.router import router as bookings_router
from .routes.calendar_webhooks import router as calendar_webhooks_router
from .routes.google_calendar import router as google_calendar_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    # Missing credentials or calendar ids stop startup here
    validate_calendar_settings()
    logger.info("✅ Calendar settings validated")

    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")
            raise

    if DEDUP_BACKEND == "redis":
        from .cache import get_redis_client

        get_redis_client()  # Connection test

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="StudioSync API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.time()
    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise

    duration_ms = (time.time() - start) * 1000
    message = f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.0f}ms)"
    if response.status_code >= 500:
        logger.error(f"❌ {message}")
    else:
        logger.info(message)
    return response


# CORS Configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Routes
app.include_router(bookings_router)
app.include_router(calendar_webhooks_router)
app.include_router(google_calendar_router)


@app.get("/")
def root():
    return {"message": "StudioSync API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
