"""FastAPI application factory."""

import logging
import traceback
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError
from starlette.exceptions import HTTPException as StarletteHTTPException

from processmaster.api.ai import router as ai_router
from processmaster.api.auth import router as auth_router
from processmaster.api.capture import router as capture_router
from processmaster.api.guides import router as guides_router
from processmaster.api.shared import router as shared_router
from processmaster.api.uploads import router as uploads_router
from processmaster.app_logging import configure_logging
from processmaster.containers import AppContainer
from processmaster.errors import AppError, ValidationError, translate_database_error

GENERIC_SERVER_MESSAGE = "An unexpected error occurred"

_HTTP_CODES = {
    401: "AUTHENTICATION_FAILED",
    403: "PERMISSION_DENIED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "PAYLOAD_TOO_LARGE",
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)
    production = container.settings.is_production

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        await state_container.job_runner.start()
        try:
            yield
        finally:
            await state_container.job_runner.stop()
            await state_container.close_resources()

    app = FastAPI(title="ProcessMaster Pro", lifespan=lifespan)
    app.state.container = container

    def error_response(
        request: Request,
        status_code: int,
        code: str,
        message: str,
        details: object = None,
        exc: BaseException | None = None,
    ) -> JSONResponse:
        error_id = uuid.uuid4().hex
        if status_code >= 500:  # noqa: PLR2004
            logger.error(
                "Error %s on %s %s: %s %s",
                error_id,
                request.method,
                request.url.path,
                code,
                message,
                exc_info=exc,
            )
        else:
            logger.info(
                "Error %s on %s %s: %s %s",
                error_id,
                request.method,
                request.url.path,
                code,
                message,
            )
        if production and status_code >= 500:  # noqa: PLR2004
            message = GENERIC_SERVER_MESSAGE
        error: dict[str, object] = {
            "code": code,
            "message": message,
            "errorId": error_id,
            "timestamp": datetime.now(tz=UTC).isoformat(),
        }
        if details is not None:
            error["details"] = details
        if not production and exc is not None:
            error["stack"] = "".join(traceback.format_exception(exc))
            cause = exc.__cause__
            if cause is not None:
                error["originalError"] = str(cause)
        return JSONResponse(
            status_code=status_code, content={"success": False, "error": error}
        )

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        return error_response(
            request, exc.status_code, exc.code, exc.message, exc.details, exc
        )

    @app.exception_handler(APIError)
    async def handle_database_error(request: Request, exc: APIError) -> JSONResponse:
        translated = translate_database_error(exc)
        return error_response(
            request,
            translated.status_code,
            translated.code,
            translated.message,
            translated.details,
            exc,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        fields = [
            {
                "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
                "message": error.get("msg"),
            }
            for error in exc.errors()
        ]
        return error_response(
            request,
            ValidationError.status_code,
            ValidationError.code,
            "Request validation failed",
            {"fields": fields},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return error_response(
            request,
            exc.status_code,
            _HTTP_CODES.get(exc.status_code, "HTTP_ERROR"),
            str(exc.detail),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        return error_response(
            request, 500, "INTERNAL_ERROR", str(exc) or type(exc).__name__, exc=exc
        )

    app.include_router(auth_router)
    app.include_router(capture_router)
    app.include_router(guides_router)
    app.include_router(shared_router)
    app.include_router(ai_router)
    app.include_router(uploads_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
