from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Failure raised by services and rendered as an ``{"error": ...}`` envelope."""

    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: object | None = None,
    ) -> None:
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details
        super().__init__(f"{code}: {message}")


def bad_request(code: str, message: str) -> APIError:
    return APIError(status_code=status.HTTP_400_BAD_REQUEST, code=code, message=message)


def unauthorized(message: str) -> APIError:
    return APIError(status_code=status.HTTP_401_UNAUTHORIZED, code="unknown_user", message=message)


def forbidden(code: str, message: str) -> APIError:
    return APIError(status_code=status.HTTP_403_FORBIDDEN, code=code, message=message)


def not_found(code: str, message: str) -> APIError:
    return APIError(status_code=status.HTTP_404_NOT_FOUND, code=code, message=message)


def conflict(code: str, message: str) -> APIError:
    return APIError(status_code=status.HTTP_409_CONFLICT, code=code, message=message)


def success_response(data: object, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"data": jsonable_encoder(data)})


def error_response(
    *,
    status_code: int,
    code: str,
    message: str,
    details: object | None = None,
) -> JSONResponse:
    body: dict[str, object] = {"code": code, "message": message}
    if details is not None:
        # Validation details may carry exception instances.
        body["details"] = jsonable_encoder(details, custom_encoder={Exception: str})
    return JSONResponse(status_code=status_code, content={"error": body})


async def _api_error(request: Request, exc: APIError) -> JSONResponse:
    logger.debug("API error path=%s status=%s code=%s", request.url.path, exc.status_code, exc.code)
    return error_response(status_code=exc.status_code, code=exc.code, message=exc.message, details=exc.details)


async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.debug("Validation failed path=%s errors=%s", request.url.path, len(errors))
    return error_response(
        status_code=422,
        code="validation_error",
        message="Request validation failed",
        details=errors,
    )


async def _http_error(_: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, str):
        return error_response(status_code=exc.status_code, code="http_error", message=exc.detail)
    return error_response(status_code=exc.status_code, code="http_error", message="Request failed", details=exc.detail)


async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error method=%s path=%s", request.method, request.url.path, exc_info=exc)
    return error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="internal_error",
        message="Internal server error",
    )


def add_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, _api_error)
    app.add_exception_handler(RequestValidationError, _validation_error)
    app.add_exception_handler(HTTPException, _http_error)
    app.add_exception_handler(Exception, _unexpected_error)
