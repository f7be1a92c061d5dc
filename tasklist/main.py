import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .attachments import AttachmentStorage
from .config import Settings
from .exceptions import AttachmentRejected, StorageError
from .routes import auth, graphql, realtime, tasks, uploads
from .security import load_or_create_secret
from .store import RecordStore

logger = logging.getLogger(__name__)

NO_CACHE_PREFIXES = ("/api", "/graphql")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        # Startup
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        settings.uploads_dir.mkdir(parents=True, exist_ok=True)
        app.state.secret = load_or_create_secret(settings.secret_file)
        logger.info("Storing data in %s and uploads in %s", settings.data_dir, settings.uploads_dir)
        yield
        # Shutdown
        logger.info("Shutting down with %d open WebSocket connections", realtime.manager.connection_count())

    # Create FastAPI app
    app = FastAPI(
        title="Task List API",
        description="Personal to-do list with attachments over REST, WebSocket and GraphQL",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = RecordStore(settings.data_dir, lenient=settings.store_lenient_load)
    app.state.uploads = AttachmentStorage(
        settings.uploads_dir,
        max_files=settings.max_upload_files,
        max_bytes=settings.max_upload_bytes,
    )

    # CORS configuration; cookies need explicit origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials="*" not in settings.allowed_origins,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    # Request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        if request.url.path.startswith(NO_CACHE_PREFIXES):
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, proxy-revalidate"
            response.headers["Pragma"] = "no-cache"
            response.headers["Expires"] = "0"
        logger.info("%s %s -> %s", request.method, request.url.path, response.status_code)
        return response

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    @app.exception_handler(AttachmentRejected)
    async def attachment_rejected_handler(request: Request, exc: AttachmentRejected):
        return JSONResponse(
            status_code=413,
            content={"detail": str(exc)},
        )

    # Include routers
    app.include_router(auth.router, prefix="/api")
    app.include_router(tasks.router, prefix="/api")
    app.include_router(uploads.router, prefix="/api")
    app.include_router(realtime.router)
    app.include_router(graphql.router, prefix="/graphql")

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "tasklist",
            "version": app.version,
            "realtime_connections": realtime.manager.connection_count(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    uvicorn.run(
        "tasklist.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
