"""
Problem-style error responses for the HTTP layer.

Every error body has "type", "title", "status", "detail" and "instance",
plus "code" and "errors" when the raiser supplied them. Domain exceptions
carry their code and details through the HTTPException detail envelope
built by DomainException.to_http_exception.
"""

from http import HTTPStatus
import logging
from typing import Any, Dict, NoReturn, Optional, Tuple

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.exceptions import DomainException, RepositoryException

logger = logging.getLogger(__name__)


def _title(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


def _unpack_detail(detail: Any) -> Tuple[Optional[str], Optional[str], Optional[Any]]:
    """(message, code, errors) from an HTTPException detail."""
    if isinstance(detail, dict):
        message = detail.get("message") or detail.get("detail")
        code = detail.get("code")
        return (
            message if isinstance(message, str) else None,
            code if isinstance(code, str) else None,
            detail.get("details") or detail.get("errors") or None,
        )
    if detail is None:
        return None, None, None
    return str(detail), None, None


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Re-raise a domain exception as the matching HTTPException."""
    raise exc.to_http_exception()


def register_error_handlers(app: FastAPI) -> None:
    media_type = "application/problem+json" if settings.strict_problem_media_type else "application/json"

    def respond(
        request: Request,
        status_code: int,
        detail: Optional[str],
        *,
        code: Optional[str] = None,
        errors: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> JSONResponse:
        body: Dict[str, Any] = {
            "type": "about:blank",
            "title": _title(status_code),
            "status": status_code,
            "detail": detail or "",
            "instance": request.url.path,
        }
        if code:
            body["code"] = code
        if errors is not None:
            body["errors"] = jsonable_encoder(errors)
        return JSONResponse(body, status_code=status_code, media_type=media_type, headers=headers)

    def from_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message, code, errors = _unpack_detail(exc.detail)
        return respond(
            request,
            exc.status_code,
            message,
            code=code,
            errors=errors,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return from_http_exception(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def starlette_http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return from_http_exception(request, exc)

    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        return from_http_exception(request, exc.to_http_exception())

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return respond(
            request, 422, "Request validation failed", code="validation_error", errors=exc.errors()
        )

    @app.exception_handler(RepositoryException)
    async def repository_exception_handler(
        request: Request, exc: RepositoryException
    ) -> JSONResponse:
        logger.error(f"Unhandled repository error on {request.url.path}: {exc}")
        return respond(request, 500, "A database error occurred", code="repository_error")

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.url.path}")
        return respond(request, 500, "Internal Server Error", code="internal_server_error")
