import asyncio
import logging
import time

import redis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi_utils.tasks import repeat_every

from .config import settings
from .api import orders, kitchen, admin, websocket
from .api.deps import build_order_service
from .api.errors import register_exception_handlers
from .core.cache import invalidate_order_cache
from .core.exceptions import StoreUnavailable
from .services.redis import redis_client

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Sweet Waffle Orders API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add response time header"""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


@app.get("/")
async def root():
    return {"message": "Sweet Waffle orders are up"}

@app.get("/health")
async def health():
    try:
        redis_ok = bool(redis_client.ping())
    except redis.RedisError:
        redis_ok = False
    return {"status": "ok" if redis_ok else "degraded", "redis": redis_ok}


@repeat_every(seconds=settings.EXPIRY_SWEEP_SECONDS)
def expire_stale_orders():
    """Watchdog: pending orders nobody accepted in time become expired"""
    try:
        expired = build_order_service().expire_due()
    except StoreUnavailable as e:
        logger.warning(f"Expiry sweep skipped: {e}")
        return
    if expired:
        invalidate_order_cache()

@app.on_event("startup")
async def startup_event():
    try:
        redis_client.ping()
        logger.info("Redis connected successfully")
    except redis.RedisError as e:
        logger.error(f"Redis connection failed: {e}")

    if not settings.BACKGROUND_JOBS_ENABLED:
        return
    app.state.feed_task = asyncio.create_task(websocket.run_feed_listener())
    await expire_stale_orders()

@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "feed_task", None)
    if task is not None:
        task.cancel()


app.include_router(orders.router)
app.include_router(kitchen.router)
app.include_router(admin.router)
app.include_router(websocket.router)
