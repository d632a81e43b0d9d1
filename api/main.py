import time
import uuid
import uvicorn
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from api.v1.router import api_router
from api.v1.middleware.page_guard import page_guard
from core.exceptions import setup_exception_handlers
from utils.logging import get_logger, get_request_logger
from prometheus_fastapi_instrumentator import Instrumentator

logger = get_logger(__name__)
settings = get_settings()


async def _init_db() -> None:
    """Initialize database connections."""
    logger.info("Initializing database connections...")
    from config.database import init_db

    await init_db()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info(f"Starting {settings.APP_NAME}...")

    try:
        await _init_db()
        logger.info("Database initialized")
        yield
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    logger.info(f"Shutting down {settings.APP_NAME}...")

    from config.database import close_db
    from services.session.custodian import close_session_custodian

    await close_session_custodian()
    await close_db()
    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    description="Session custody and activation code lifecycle for the field survey console",
    version=settings.APP_VERSION,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    openapi_url="/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

setup_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Metrics
Instrumentator().instrument(app).expose(app, include_in_schema=False, endpoint="/metrics")

app.middleware("http")(page_guard)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with performance tracking"""
    start_time = time.time()
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    access_logger = get_request_logger("access", request_id)
    access_logger.debug(f"{request.method} {request.url.path} - Started")

    response = await call_next(request)

    process_time = time.time() - start_time
    outcome = "Success" if response.status_code < 400 else "Failed"
    access_logger.info(
        f"{outcome} {request.method} {request.url.path} - "
        f"Status: {response.status_code} - Time: {process_time:.4f}s"
    )

    response.headers["X-Process-Time"] = str(process_time)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-System-Version"] = settings.APP_VERSION

    return response

# Routers
app.include_router(api_router)

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT or 8080,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
        access_log=True,
    )
