"""
FastAPI Application Entry Point

Integrates:
  - WhatsApp session control (/api)
  - Outbound sends (/api/send)
  - Dashboard login
  - Health checks
  - Middleware for logging & error handling

Run: uvicorn main:app --host 0.0.0.0 --port 3000
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from api.routes import login_router, router as session_router, send_router
from api.security import ApiError
from config import Config
from infra.bootstrap import ServiceContext, bootstrap_services

# Setup logging
logging.basicConfig(
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan: startup and shutdown handlers.
    """
    # Startup
    if getattr(app.state, "context", None) is None:
        app.state.context = bootstrap_services()
    context: ServiceContext = app.state.context

    logger.info("=" * 60)
    logger.info("WPP session API starting up...")
    logger.info(f"Port: {Config.PORT}")
    logger.info(f"API token: {'required' if Config.token_required() else 'disabled (open access)'}")
    logger.info("=" * 60)
    await context.start()

    yield

    # Shutdown
    logger.info("WPP session API shutting down...")
    await context.aclose()


def create_app(context: Optional[ServiceContext] = None) -> FastAPI:
    """
    Build the application.

    Args:
        context: Pre-built service context (tests); bootstrapped on startup if None
    """
    app = FastAPI(
        title="API WPP",
        description="WhatsApp session API: pairing, status and outbound messages",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api-docs",
        openapi_url="/api-docs.json",
        redoc_url=None,
        servers=[{"url": Config.SERVER_URL}],
    )
    app.state.context = context

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Middleware for logging
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests."""
        logger.debug(f"{request.method} {request.url.path}")
        try:
            response = await call_next(request)
            return response
        except Exception as e:
            logger.error(f"Request error: {str(e)}", exc_info=True)
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error"},
            )

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.debug(f"Invalid request body on {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=400, content={"error": "Invalid request body."})

    # Include routers
    app.include_router(login_router)
    app.include_router(session_router)
    app.include_router(send_router)

    # Health check endpoints
    @app.get("/health/live")
    async def health_live():
        """Live health check (Kubernetes liveness probe)."""
        return {"status": "alive"}

    @app.get("/health/ready")
    async def health_ready(request: Request):
        """Readiness health check: ready once the WhatsApp session is open."""
        status = request.app.state.context.session.status()
        if status.connected:
            return {"status": "ready", "session": status.phase.value}
        return {"status": "not_ready", "session": status.phase.value}

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "name": "API WPP",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "docs": "GET /api-docs",
                "login": "POST /login",
                "qr": "GET /api/qr",
                "status": "GET /api/status",
                "send_text": "POST /api/send/text",
                "send_media": "POST /api/send/media",
                "send_contact": "POST /api/send/contact",
                "send_narration": "POST /api/send/narration",
                "health_live": "GET /health/live",
                "health_ready": "GET /health/ready",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=Config.PORT,
    )
