"""
Site Data Cache - Diagnostics API
Read-mostly view of the persistent cache: stats, health, operation log,
typed views of cached payloads, plus on-demand maintenance and prefix
invalidation.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Query, Request

from config.settings import settings
from sitecache import __version__
from sitecache.cache import CacheContext, CacheKeys, InvalidPatternError, PrefixMatcher
from sitecache.view_models import BlogPostListView, RepositoryListView, StatusView
from sitecache.schemas import (
    CacheHealthResponse,
    CacheStatsResponse,
    InvalidationResponse,
    MaintenanceResponse,
    OperationSchema,
    OperationsResponse,
    ServiceHealth,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("sitecache.api")

APP_NAME = "Site Data Cache"


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.cache = CacheContext.from_settings(settings)
    logger.info(f"{APP_NAME} {__version__} started")
    try:
        yield
    finally:
        app.state.cache.close()
        logger.info(f"{APP_NAME} stopped")


app = FastAPI(
    title=APP_NAME,
    description="Diagnostics for the persistent site data cache",
    version=__version__,
    lifespan=lifespan,
)


def get_cache(request: Request) -> CacheContext:
    """The CacheContext built in the lifespan."""
    cache = getattr(request.app.state, "cache", None)
    if cache is None or cache.closed:
        raise HTTPException(status_code=503, detail="Cache is not available")
    return cache


@app.get("/health", response_model=ServiceHealth)
def health_check(cache: CacheContext = Depends(get_cache)):
    """Health check endpoint."""
    return ServiceHealth(
        status="ok",
        cache_directory=str(cache.manager.cache_dir),
        cache_open=not cache.closed,
    )


@app.get("/version")
def version_info():
    """Version information endpoint."""
    return {"name": APP_NAME, "version": __version__}


@app.get("/cache/stats", response_model=CacheStatsResponse)
def cache_stats(cache: CacheContext = Depends(get_cache)):
    """Get cache statistics."""
    return CacheStatsResponse.from_stats(cache.manager.get_stats())


@app.get("/cache/health", response_model=CacheHealthResponse)
def cache_health(cache: CacheContext = Depends(get_cache)):
    """Derived health status with recommendations."""
    return CacheHealthResponse.from_status(cache.manager.get_health_status())


@app.get("/cache/operations", response_model=OperationsResponse)
def cache_operations(
    limit: int = Query(100, ge=1, le=1000),
    cache: CacheContext = Depends(get_cache),
):
    """Most recent cache operations, newest first."""
    records = cache.manager.get_recent_operations(limit)
    return OperationsResponse(
        count=len(records),
        operations=[OperationSchema.from_record(r) for r in records],
    )


@app.post("/cache/maintenance", response_model=MaintenanceResponse)
def run_maintenance(cache: CacheContext = Depends(get_cache)):
    """Run a maintenance pass now."""
    report = cache.monitor.perform_maintenance()
    return MaintenanceResponse.from_report(report)


@app.delete("/cache/entries", response_model=InvalidationResponse)
def invalidate_entries(
    prefix: str = Query(..., min_length=1),
    cache: CacheContext = Depends(get_cache),
):
    """Invalidate every entry whose key starts with ``prefix``."""
    try:
        removed = cache.manager.invalidate_cache(PrefixMatcher(prefix))
    except InvalidPatternError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return InvalidationResponse(prefix=prefix, removed=removed)


# =============================================================================
# Typed views of cached payloads
# =============================================================================


def _cached_payload(cache: CacheContext, key: str):
    # peek keeps diagnostics out of the hit/miss counters
    payload = cache.manager.peek(key)
    if payload is None:
        raise HTTPException(status_code=404, detail=f"Nothing cached for {key}")
    return payload


@app.get("/cache/views/repositories")
def repositories_view(cache: CacheContext = Depends(get_cache)):
    view = RepositoryListView.from_payload(_cached_payload(cache, CacheKeys.GITHUB_REPOSITORIES))
    return {
        "total": view.total,
        "active": len(view.active()),
        "repositories": [r.to_dict() for r in view.repositories],
    }


@app.get("/cache/views/posts")
def posts_view(cache: CacheContext = Depends(get_cache)):
    view = BlogPostListView.from_payload(_cached_payload(cache, CacheKeys.BLOG_POSTS))
    return {
        "total": view.total,
        "posts": [p.to_dict() for p in view.latest(limit=view.total)],
    }


@app.get("/cache/views/status")
def status_view(cache: CacheContext = Depends(get_cache)):
    return StatusView.from_payload(_cached_payload(cache, CacheKeys.STATUS_DATA)).to_dict()
