"""
Portal Service - FastAPI Application
Hosted-auth starter portal: sign in, sign up, password reset, dashboard and profile
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
import structlog

from shared.utils.logger import setup_logging, get_request_logger

from app.config import get_settings
from app.routes import auth, dashboard, pages, profile
from app.utils.redis_session import RedisSessionManager, init_redis_client, close_redis_client
from app.utils.supabase_client import supabase_client, SupabaseNotConfiguredError

logger = structlog.get_logger(__name__)
request_logger = get_request_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events"""
    settings = get_settings()
    setup_logging(settings.logging_config_path, settings.log_level, settings.log_format)
    logger.info("Portal Service starting up...")
    settings.log_config()

    if not settings.supabase_configured:
        logger.warning("Supabase credentials missing, auth endpoints will return 503")

    # Sessions reconnect lazily, so a Redis outage at boot is not fatal
    try:
        await init_redis_client()
    except (RedisError, OSError) as e:
        logger.error("Failed to initialize Redis", error=str(e))

    await supabase_client.start()
    logger.info("Portal Service startup complete")

    yield

    logger.info("Portal Service shutting down...")
    await supabase_client.stop()
    await close_redis_client()


settings = get_settings()

app = FastAPI(
    title=settings.app_name,
    description="Hosted-auth starter portal with server-rendered pages and a JSON API",
    version=settings.service_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and duration"""
    started = time.perf_counter()
    response = await call_next(request)
    request_logger.log_request(
        method=request.method,
        url=request.url.path,
        status_code=response.status_code,
        response_time=time.perf_counter() - started,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Custom HTTP exception handler"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": True,
            "message": exc.detail,
            "status_code": exc.status_code
        },
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Flatten pydantic errors into field/message pairs"""
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get('loc', ()) if part != 'body']
        errors.append({
            "field": ".".join(location),
            "message": error.get('msg', '').replace("Value error, ", "")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": True,
            "message": "Validation failed",
            "status_code": status.HTTP_422_UNPROCESSABLE_ENTITY,
            "errors": errors
        }
    )


@app.exception_handler(SupabaseNotConfiguredError)
async def supabase_not_configured_handler(request: Request, exc: SupabaseNotConfiguredError):
    logger.error("Hosted auth service not configured", url=request.url.path)
    if not request.url.path.startswith("/api"):
        return pages.render_error_page(request, pages.SERVICE_UNAVAILABLE,
                                       status.HTTP_503_SERVICE_UNAVAILABLE)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "error": True,
            "message": "Authentication service is not configured",
            "status_code": status.HTTP_503_SERVICE_UNAVAILABLE
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(
        "Unhandled exception",
        error=str(exc),
        method=request.method,
        url=request.url.path,
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": True,
            "message": "An unexpected error occurred",
            "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR
        }
    )


@app.get("/health")
async def health_check():
    """Service health check"""
    settings = get_settings()
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.service_version
    }


@app.get("/health/redis")
async def redis_health_check():
    """Session store connection health check"""
    if not await RedisSessionManager.ping():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Redis connection failed"
        )
    return {"status": "healthy", "redis": "connected"}


@app.get("/health/supabase")
async def supabase_health_check():
    """Hosted auth service health check"""
    result = await supabase_client.health_check()
    if not result['success']:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Supabase unavailable"
        )
    return {"status": "healthy", "supabase": "reachable"}


# Include routers
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(profile.router, prefix="/api/profile", tags=["Profile"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])
app.include_router(pages.router, tags=["Pages"], include_in_schema=False)
