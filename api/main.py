import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cache import router as cache_router
from cache.store import CacheStore
from core import config, db
from trips import router as trips_router
from trips.aggregator import ResultAggregator

logging.basicConfig(
    level=config.log_level(),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

logger = logging.getLogger(__name__)


def build_cache() -> CacheStore:
    return CacheStore(
        max_items=config.cache_max_items(),
        max_bytes=config.cache_max_bytes(),
        ttl_s=config.cache_ttl_s() or config.DEFAULT_CACHE_TTL_S,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    # One DB pool and one response cache per process.
    await db.init_pool()
    app.state.cache = build_cache()
    app.state.aggregator = ResultAggregator(db.fetch_all)
    logger.info(
        "startup cache_max_items=%s cache_max_bytes=%s cache_ttl_s=%s",
        app.state.cache.max_items,
        app.state.cache.max_bytes,
        app.state.cache.ttl_s,
    )
    try:
        yield
    finally:
        await db.close_pool()


app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["X-Cache"],
)

app.include_router(trips_router.router, tags=["trips"])
app.include_router(cache_router.router, tags=["cache"])


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.get("/")
def root() -> dict:
    return {"message": "trip fare api"}
