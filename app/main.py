import logging
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from alembic.config import Config
from alembic import command
from app.core.config import settings
from app.core.errors import PlatformError
from app.core.logging import configure_logging
from app.api.routes import router as api_router
from app.db.session import engine
from app.workspace.manager import BackendDirectoryManager

configure_logging(settings.log_level)
log = logging.getLogger(__name__)


def wait_for_database(max_retries: int = 30, retry_delay: float = 1.0) -> None:
    """Wait for the platform database to be available."""
    for attempt in range(max_retries):
        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            log.info("Database connection successful")
            return
        except Exception as e:
            if attempt < max_retries - 1:
                log.warning("Database not ready, retrying in %s seconds (attempt %d/%d): %s",
                            retry_delay, attempt + 1, max_retries, e)
                time.sleep(retry_delay)
            else:
                log.error("Database connection failed after %d attempts", max_retries)
                raise


def run_migrations() -> None:
    """Run Alembic migrations to head."""
    try:
        log.info("Running database migrations...")
        alembic_cfg = Config("alembic.ini")
        command.upgrade(alembic_cfg, "head")
        log.info("Database migrations completed successfully")
    except Exception as e:
        log.error("Database migration failed: %s", e, exc_info=True)
        raise


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    log.info("Starting API server...")
    try:
        BackendDirectoryManager(settings.backends_root).ensure_root()
        if settings.auto_migrate:
            wait_for_database()
            run_migrations()
        log.info("API server startup complete")
    except Exception as e:
        log.error("API startup failed: %s", e, exc_info=True)
        raise
    yield
    log.info("Shutting down API server...")


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    lifespan=lifespan
)


@app.exception_handler(PlatformError)
async def platform_error_handler(request: Request, exc: PlatformError):
    if exc.status_code >= 500:
        log.error("%s %s failed: %s", request.method, request.url.path, exc.message, extra={"op": "http"})
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "error": exc.detail or exc.message},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    detail = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"success": False, "message": "Invalid input", "error": detail})


app.include_router(api_router, prefix="/v1")
