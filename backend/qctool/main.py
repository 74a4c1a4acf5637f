"""FastAPI application entry point."""
from collections import defaultdict
from contextlib import asynccontextmanager
from time import time
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from qctool.api.v1.api import api_router
from qctool.core.config import EnvConfigError, get_settings
from qctool.core.logging import configure_logging, get_logger
from qctool.core.middleware import RequestContextMiddleware
from qctool.db.session import close_db, init_db

settings = get_settings()
logger = get_logger(__name__)

RATE_LIMITED_PATHS = {f"{settings.api_prefix}/quality-control/ai-validate"}


# =============================================================================
# Rate Limiter (Token Bucket Algorithm)
# =============================================================================
class RateLimiter:
    """Token bucket rate limiter."""

    def __init__(self, rate: int = 10, per: int = 60):
        """
        Initialize rate limiter.

        Args:
            rate: Maximum requests allowed
            per: Time window in seconds
        """
        self.rate = rate
        self.per = per
        self._tokens: dict[str, float] = defaultdict(lambda: float(rate))
        self._last_update: dict[str, float] = {}
        self._last_sweep = time()

    def _evict_full_buckets(self, now: float) -> None:
        """Forget clients whose bucket has refilled; a missing key starts full."""
        refill_rate = self.rate / self.per
        full = [
            key for key, last in self._last_update.items()
            if self._tokens[key] + (now - last) * refill_rate >= self.rate
        ]
        for key in full:
            del self._tokens[key]
            del self._last_update[key]
        self._last_sweep = now

    def _get_token_count(self, key: str) -> float:
        """Get current token count for a key."""
        now = time()
        if now - self._last_sweep >= self.per:
            self._evict_full_buckets(now)

        elapsed = now - self._last_update.get(key, now)

        self._tokens[key] = min(
            self.rate,
            self._tokens[key] + elapsed * (self.rate / self.per)
        )
        self._last_update[key] = now

        return self._tokens[key]

    def is_allowed(self, key: str, tokens: float = 1.0) -> bool:
        """Consume tokens if available. Returns False when rate limited."""
        if self._get_token_count(key) >= tokens:
            self._tokens[key] -= tokens
            return True
        return False

    def get_retry_after(self, key: str) -> float:
        """Get seconds until next token is available."""
        current = self._get_token_count(key)
        if current >= 1.0:
            return 0.0
        return (1.0 - current) * (self.per / self.rate)


_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get or create global rate limiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(rate=settings.ai_validation_rate_limit, per=60)
    return _rate_limiter


async def rate_limit_middleware(request: Request, call_next):
    """Limit inline AI validation requests per client."""
    if request.method != "POST" or request.url.path.rstrip("/") not in RATE_LIMITED_PATHS:
        return await call_next(request)

    client_key = request.client.host if request.client else "anonymous"
    rate_limiter = get_rate_limiter()

    if not rate_limiter.is_allowed(client_key):
        retry_after = rate_limiter.get_retry_after(client_key)
        logger.warning(
            "rate_limit_exceeded",
            client=client_key,
            path=request.url.path,
            retry_after=retry_after,
        )
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "Rate limit exceeded",
                "detail": f"Rate limit exceeded. Retry after {retry_after:.1f} seconds",
            },
            headers={"Retry-After": str(int(retry_after) + 1)},
        )

    return await call_next(request)


# =============================================================================
# Application Lifespan
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging(settings)
    logger.info("application_startup", version=settings.app_version)

    try:
        settings.validate_production_settings()
    except EnvConfigError as e:
        logger.warning("env_config_incomplete", missing=e.missing_keys)

    try:
        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_init_failed", error=str(e))

    yield

    logger.info("application_shutdown")
    await close_db()


# =============================================================================
# FastAPI Application
# =============================================================================
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)
app.middleware("http")(rate_limit_middleware)

app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.app_version}


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "qctool.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
