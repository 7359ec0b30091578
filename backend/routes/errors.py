import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from services.errors import AppError, ValidationError

logger = logging.getLogger("questlog.errors")


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(AppError)
    async def app_error_handler(_: Request, exc: AppError):
        logger.warning(f"{exc.status_code} {type(exc).__name__}: {exc.detail}")
        content = {"detail": exc.detail}
        if isinstance(exc, ValidationError) and exc.errors:
            content["errors"] = [error.to_dict() for error in exc.errors]
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def generic_exception_handler(_: Request, exc: Exception):
        logger.exception(f"Unhandled error: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "An unexpected error occurred."},
        )
