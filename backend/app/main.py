"""FastAPI application entry point."""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import Settings, settings as default_settings
from app.core.errors import DispatcherError
from app.core.logging import get_logger, setup_logging
from app.api.routes import dispatch, health
from app.notifications.push_sender import PushClient

logger = get_logger(__name__)


def create_app(settings: Settings | None = None, push_client: PushClient | None = None) -> FastAPI:
    """
    Build the dispatcher app.

    Push credentials are checked at startup: a missing API key or app id
    stops the app from starting instead of letting every run fail.
    """
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings.require_push_credentials()
        owns_client = push_client is None
        app.state.settings = settings
        app.state.push_client = push_client or PushClient.from_settings(settings)
        logger.info("notification dispatcher started (api_url=%s)", settings.ONESIGNAL_API_URL)
        try:
            yield
        finally:
            if owns_client:
                app.state.push_client.close()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Notification outbox dispatcher",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.exception_handler(DispatcherError)
    async def dispatcher_error_handler(request: Request, exc: DispatcherError) -> JSONResponse:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})

    @app.exception_handler(StarletteHTTPException)
    async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException) -> Response:
        # Covers methods no route lists (TRACE, PROPFIND, ...).
        if exc.status_code == 405:
            return JSONResponse(status_code=405, content={"error": "Method not allowed"}, headers=exc.headers)
        return await http_exception_handler(request, exc)

    # Include routers
    app.include_router(health.router, tags=["health"])
    app.include_router(dispatch.router, tags=["dispatch"])

    return app


app = create_app()
