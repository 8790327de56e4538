"""
FastAPI application main module.
Wires the host platform (callback endpoint + structured routes), the background
job dispatchers, middleware, error handling and health checks.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional
from async_request.api.v1 import api_router
from async_request.config import LOG_FILE, LOG_LEVEL
from async_request.dispatcher import AsyncDispatcher
from async_request.host import FastAPIHost
from async_request.jobs import EmailNotifyJob
from async_request.utils import setup_logging, get_logger

# Setup logging before creating the app
setup_logging(
    log_level=LOG_LEVEL,
    log_file=LOG_FILE,
    enable_console=True
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Registers structured routes on startup and drains outstanding self-requests on shutdown.
    """
    logger.info("Application startup initiated")
    host: FastAPIHost = app.state.host
    host.init_routes()
    logger.info(
        "Application startup completed",
        dispatchers=sorted(app.state.dispatchers),
        routes=len(host.routes)
    )
    try:
        yield
    finally:
        logger.info("Application shutdown initiated")
        await host.aclose()
        logger.info("Application shutdown completed")


def create_app(host: Optional[FastAPIHost] = None) -> FastAPI:
    host = host or FastAPIHost()

    app = FastAPI(
        title="Async Request Service",
        description="""
    Fire-and-forget background work triggered by the server calling itself.

    User-facing endpoints return as soon as the background request has been
    issued; the job runs in that second request, authenticated by a
    single-use token.
    """,
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )
    app.state.host = host
    app.state.dispatchers = {
        "email_notify": AsyncDispatcher(EmailNotifyJob(), host),
    }

    @app.middleware("http")
    async def add_request_context_and_logging(request: Request, call_next):
        """
        Add request ID, timing, and request/response logging.
        """
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.start_time = time.time()

        logger.info(
            "Request started",
            method=request.method,
            path=request.url.path,
            remote_addr=request.client.host if request.client else "unknown",
            request_id=request_id
        )

        response = await call_next(request)

        process_time = time.time() - request.state.start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))
        response.headers["X-Content-Type-Options"] = "nosniff"

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time_ms=round(process_time * 1000, 2),
            request_id=request_id
        )
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors."""
        request_id = getattr(request.state, "request_id", "unknown")
        logger.warning(
            "Request validation failed",
            errors=exc.errors(),
            request_id=request_id,
            path=request.url.path,
            method=request.method
        )
        return JSONResponse(
            status_code=422,
            content={
                "success": False,
                "message": "Request validation failed",
                "details": jsonable_errors(exc),
                "request_id": request_id
            }
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        request_id = getattr(request.state, "request_id", "unknown")
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            request_id=request_id,
            path=request.url.path,
            method=request.method
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "success": False,
                "message": exc.detail,
                "request_id": request_id
            },
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions, including failures raised by background jobs."""
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            request_id=request_id,
            path=request.url.path,
            method=request.method,
            exc_info=exc
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "message": "Internal server error",
                "request_id": request_id
            }
        )

    @app.get("/health", tags=["health"], summary="Basic health check")
    async def health_check():
        """Basic health check endpoint for load balancers."""
        return {
            "status": "healthy",
            "service": "async-request",
            "version": "1.0.0",
            "timestamp": time.time(),
            "routes_initialized": host.routes_initialized,
            "pending_self_requests": getattr(host.transport, "pending_count", 0),
            "dispatchers": {
                name: {"identifier": d.identifier, "mode": d.mode.value}
                for name, d in app.state.dispatchers.items()
            },
        }

    @app.get("/", tags=["root"])
    async def root():
        """API root endpoint with basic information."""
        return {
            "message": "Async Request Service API",
            "version": "1.0.0",
            "documentation": "/docs",
            "health_check": "/health",
            "api_base": "/api/v1"
        }

    app.include_router(host.router)
    app.include_router(api_router, prefix="/api/v1")
    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors with non-JSON context values stringified."""
    return [
        {k: (str(v) if k == "ctx" else v) for k, v in error.items()}
        for error in exc.errors()
    ]


app = create_app()

# Development server configuration
if __name__ == "__main__":
    import uvicorn

    logger.info("Starting development server")

    uvicorn.run(
        "async_request.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        reload_dirs=["async_request"],
        log_level="info",
        access_log=True
    )
