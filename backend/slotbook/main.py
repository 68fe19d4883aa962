import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

from .config import settings
from .errors import SchedulingError
from .redis_client import redis_client
from .routers import availability, bookings, calendar_overrides, internal, slots
from .services.horizon_extender import horizon_extender_loop

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = None
    if settings.horizon_extender_enabled:
        task = asyncio.create_task(horizon_extender_loop())

    yield

    if task is not None:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
    logger.info("Application shutting down...")


app = FastAPI(title="Slotbook API", lifespan=lifespan)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    logger.info(f"{request.method} {request.url.path} → {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(availability.router)
app.include_router(slots.router)
app.include_router(calendar_overrides.router)
app.include_router(bookings.router)
app.include_router(internal.router)


@app.get("/health")
def health():
    try:
        redis_ok = redis_client.ping()
    except RedisError as e:
        logger.warning(f"Redis ping failed: {e}")
        redis_ok = False
    return {"status": "ok", "redis": redis_ok}
