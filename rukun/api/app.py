"""FastAPI application: routers, error handling, CORS and uploaded files."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from rukun.api.routes import auth, events, inventory, iuran, keuangan, media, settings, users
from rukun.config import get_settings
from rukun.models import Base
from rukun.services import engine
from rukun.services.errors import AppError, error_response
from rukun.services.storage import URL_PREFIX

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle (startup and shutdown)."""
    # Alembic owns the schema in production; create_all covers fresh SQLite setups
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")
    yield
    logger.info("Application shutting down")


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render service errors as {"error": {code, message, details}}."""
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info(
            "%s %s -> %d %s: %s",
            request.method,
            request.url.path,
            exc.http_status,
            exc.code,
            exc.message,
        )
    return JSONResponse(status_code=exc.http_status, content=jsonable_encoder(error_response(exc)))


def create_app() -> FastAPI:
    config = get_settings()
    app = FastAPI(
        title=config.api_title,
        description="RT/RW community administration: iuran, keuangan, events and inventory",
        version=config.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(AppError, app_error_handler)

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(iuran.router)
    app.include_router(keuangan.router)
    app.include_router(events.router)
    app.include_router(settings.router)
    app.include_router(inventory.router)
    app.include_router(media.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    upload_dir = Path(config.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount(URL_PREFIX.rstrip("/"), StaticFiles(directory=str(upload_dir)), name="uploads")

    return app


app = create_app()
