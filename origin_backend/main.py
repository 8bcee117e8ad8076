import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from origin_backend.api import generate, ipfs, mint, nft, rep
from origin_backend.api.deps import get_services
from origin_backend.core.config import settings
from origin_backend.core.errors import OriginBackendError
from origin_backend.core.limiter import limiter
from origin_backend.core.security import SecurityHeadersMiddleware, sanitize_error_message
from origin_backend.core.types.api import DetailResponse, ErrorResponse, SuccessResponse
from origin_backend.core.utils.logging_config import (
    CorrelationIdMiddleware,
    init_application_logging,
)
from origin_backend.services.container import ServiceContainer, build_services

# Initialize structured logging
init_application_logging()

logger = logging.getLogger("origin_backend.main")

# StaticFiles needs the directory to exist when it is mounted
settings.output_dir.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = build_services(settings)
    app.state.services = services
    logger.info(
        "Origin mint backend ready: output_dir=%s chain_id=%s backend_wallet=%s",
        settings.output_dir,
        settings.chain_id,
        "configured" if services.relay.has_backend_wallet else "missing",
    )
    try:
        yield
    finally:
        await services.aclose()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Generates branded NFT artwork, pins it to IPFS and relays Origin contract calls",
    version=settings.version,
    lifespan=lifespan,
)

# Attach limiter to app.state for access in route decorators
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

logger.info(
    "Rate limiting initialized with configuration: generate=%s, upload=%s, chain=%s",
    settings.rate_limit_generate_endpoints,
    settings.rate_limit_upload_endpoints,
    settings.rate_limit_chain_endpoints,
)


@app.exception_handler(OriginBackendError)
async def origin_error_handler(request: Request, exc: OriginBackendError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.error)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    body = ErrorResponse(
        error=exc.message,
        code=exc.error,
        detail=sanitize_error_message(exc.detail) if exc.detail else None,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in errors
    )
    body = ErrorResponse(
        error="Invalid request", code="invalid_request", detail=detail, status_code=400
    )
    return JSONResponse(status_code=400, content=body.model_dump())


# Configure CORS (restricted to the frontend origins)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(CorrelationIdMiddleware)

# Generated images are served as plain files
app.mount("/images", StaticFiles(directory=str(settings.output_dir)), name="images")

app.include_router(generate.router)
app.include_router(ipfs.router)
app.include_router(rep.router)
app.include_router(mint.router)
app.include_router(nft.router)


def _check_storage_health() -> dict:
    """
    Check the health of the rate limiting storage backend.

    Returns dict with storage health status and details.
    """
    if not settings.redis_url:
        return {
            "type": "memory",
            "healthy": True,
            "message": "In-memory storage active",
        }

    try:
        import redis

        client = redis.from_url(settings.redis_url, socket_timeout=2)
        client.ping()
        return {
            "type": "redis",
            "healthy": True,
            "message": "Redis connection successful",
        }
    except ImportError:
        return {
            "type": "redis",
            "healthy": False,
            "message": "Redis client not installed",
        }
    except Exception as e:
        logger.warning("Redis health check failed: %s", str(e))
        return {
            "type": "redis",
            "healthy": False,
            "message": f"Redis connection failed: {sanitize_error_message(str(e))}",
        }


# Health check endpoints
@app.get("/health")
def health_check() -> SuccessResponse:
    """Basic liveness check."""
    return {
        "status": "ok",
        "service": settings.service_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/api/health")
def api_health_check(services: ServiceContainer = Depends(get_services)) -> DetailResponse:
    """
    Detailed health check.

    Reports the output directory, branding logo, signing keys and rate
    limiting storage. Missing signing keys degrade the service since only the
    chain endpoints depend on them.
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.version,
        "environment": {
            "name": settings.environment,
            "dev_mode": settings.dev_mode,
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        },
        "services": {},
    }

    output_dir = services.generator.output_dir
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        probe = output_dir / ".health_check"
        probe.write_text("ok")
        probe.unlink()
        health_status["services"]["output_directory"] = {
            "status": "healthy",
            "path": str(output_dir),
            "cached_variants": len(services.session_store),
        }
    except OSError as e:
        logger.error("Output directory health check failed: %s", e)
        health_status["services"]["output_directory"] = {
            "status": "unhealthy",
            "path": str(output_dir),
            "error": str(e),
        }
        health_status["status"] = "unhealthy"

    logo_present = services.brander.logo_path.is_file()
    health_status["services"]["branding"] = {
        "status": "healthy" if logo_present else "unhealthy",
        "logo_path": str(services.brander.logo_path),
    }
    if not logo_present:
        health_status["status"] = "unhealthy"

    relay = services.relay
    health_status["services"]["chain"] = {
        "status": "healthy" if relay.has_backend_wallet else "degraded",
        "chain_id": relay.chain_id,
        "origin_nft": relay.origin_nft_address,
        "rep_manager": relay.rep_manager_address,
        "backend_wallet": relay.backend_account.address if relay.backend_account else None,
        "minter_configured": relay.minter_account is not None,
    }
    if not relay.has_backend_wallet and health_status["status"] == "healthy":
        health_status["status"] = "degraded"

    storage_health = _check_storage_health()
    rate_limit_status = "enabled" if storage_health["healthy"] else "degraded"
    if not storage_health["healthy"] and health_status["status"] == "healthy":
        health_status["status"] = "degraded"

    health_status["services"]["rate_limiting"] = {
        "status": rate_limit_status,
        "storage": storage_health,
        "configuration": {
            "generate_endpoints": settings.rate_limit_generate_endpoints,
            "upload_endpoints": settings.rate_limit_upload_endpoints,
            "chain_endpoints": settings.rate_limit_chain_endpoints,
        },
    }

    return health_status
