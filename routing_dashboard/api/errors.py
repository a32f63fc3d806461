"""
Exception handlers mapping service errors to JSON error responses.

  400 {"error"}             malformed or missing request parameters
  503 {"error", "details"}  warehouse client unavailable
  500 {"error", "details"}  anything else; details only when enabled
"""
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from routing_dashboard.config import get_settings
from routing_dashboard.errors import WarehouseUnavailableError
from routing_dashboard.utils.validation import ValidationError

logger = structlog.get_logger(__name__)


def _describe_request_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part not in ("query", "path"))
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid request"


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": _describe_request_errors(exc)})


def _error_details(exc: BaseException):
    if not get_settings().show_error_details:
        return None
    return f"{type(exc).__name__}: {exc}"


async def warehouse_unavailable_handler(request: Request, exc: WarehouseUnavailableError) -> JSONResponse:
    logger.error("warehouse_unavailable", path=request.url.path, error=str(exc))
    # the driver error that made the client unavailable, when there is one
    details = _error_details(exc.__cause__ or exc)
    return JSONResponse(status_code=503, content={"error": "Warehouse unavailable", "details": details})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "details": _error_details(exc)},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(WarehouseUnavailableError, warehouse_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
