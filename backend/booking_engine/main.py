# backend/booking_engine/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from .database import init_db
from .redis_client import get_redis
from .routers import availability, bookings, slots
from .services.errors import StorageError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Database schema ready")
    yield


app = FastAPI(title="Booking Engine API", lifespan=lifespan)

app.include_router(availability.router)
app.include_router(slots.router)
app.include_router(bookings.router)


@app.exception_handler(StorageError)
@app.exception_handler(RedisError)
async def storage_error_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": {"error": "storage_error", "message": str(exc)}},
    )


@app.get("/health")
def health():
    redis = get_redis()
    if redis is None:
        return {"database": "ok", "redis": None}
    try:
        return {"database": "ok", "redis": redis.ping()}
    except RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        return {"database": "ok", "redis": False}
