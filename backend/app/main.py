"""StableLink Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .logging_config import get_logger, setup_logging
from .payments.errors import ChainClientError, ConfigError
from .payments.service import close_chain_client
from .rate_limit import limiter
from .routes import (
    analytics_router,
    auth_router,
    blockchain_router,
    payments_router,
    products_router,
    users_router,
)

logger = get_logger("stablelink.main")

CHAIN_RETRY_AFTER_SECONDS = 15


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    logger.info(f"Starting StableLink Backend API (debug={settings.debug})")
    if settings.rpc_url is None:
        logger.warning("No RPC endpoint configured; payment confirmation will return 503")
    yield
    # Shutdown
    await close_chain_client()
    logger.info("Shutting down StableLink Backend API")


app = FastAPI(
    title="StableLink Backend API",
    description="Payment links with on-chain USDC verification",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(ChainClientError)
async def chain_client_error_handler(request: Request, exc: ChainClientError):
    """Inconclusive chain checks: nothing was changed, ask the client to retry."""
    if isinstance(exc, ConfigError):
        logger.error(f"Chain client misconfigured: {exc}")
    else:
        logger.error(f"Chain node error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": {
                "message": "Blockchain verification temporarily unavailable, try again",
                "reason": exc.code,
            }
        },
        headers={"Retry-After": str(CHAIN_RETRY_AFTER_SECONDS)},
    )


# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(products_router)
app.include_router(payments_router)
app.include_router(blockchain_router)
app.include_router(analytics_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "stablelink-backend",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with actual database verification."""
    from .database import USERS_TABLE, get_supabase_client

    db_status = "disconnected"
    try:
        db = get_supabase_client()
        db.table(USERS_TABLE).select("id").limit(1).execute()
        db_status = "connected"
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }
