import logging
import uuid
from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from cafe_inventory.core.exceptions import (
    IngredientNotFoundError,
    InsufficientStockError,
    InventoryError,
    NothingToRestoreError,
    TransientDatabaseError,
    UnresolvedRecipeError,
)

log = logging.getLogger("exception_handlers")

# Most specific first; the first isinstance match wins
INVENTORY_ERROR_STATUS = [
    (InsufficientStockError, status.HTTP_409_CONFLICT),
    (IngredientNotFoundError, status.HTTP_404_NOT_FOUND),
    (NothingToRestoreError, status.HTTP_404_NOT_FOUND),
    (TransientDatabaseError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (UnresolvedRecipeError, status.HTTP_422_UNPROCESSABLE_ENTITY),
]


# Generate a clean request id for every response
def _rid():
    """Generates a unique request ID for tracing."""
    return uuid.uuid4().hex


# ----------- Exception Handlers (called by FastAPI) -----------

def http_exception_handler(request: Request, exc: HTTPException):
    """Handles exceptions raised by HTTPException (e.g., 404, 400)."""
    body = {
        "success": False,
        "error": {
            "code": "http_error",
            "message": exc.detail,
        },
        "request_id": _rid(),
    }
    return JSONResponse(status_code=exc.status_code, content=body)


def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handles Pydantic validation errors (422 Unprocessable Entity)."""
    body = {
        "success": False,
        "error": {
            "code": "validation_error",
            "message": "Invalid input data",
            "details": exc.errors(),
        },
        "request_id": _rid(),
    }
    return JSONResponse(status_code=422, content=body)


def inventory_exception_handler(request: Request, exc: InventoryError):
    """Maps engine errors to their HTTP status, keeping the error code stable."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, mapped in INVENTORY_ERROR_STATUS:
        if isinstance(exc, error_type):
            status_code = mapped
            break

    log.warning(f"{exc.code} on path {request.url.path}: {exc.message}")
    body = {
        "success": False,
        "error": exc.to_dict(),
        "request_id": _rid(),
    }
    return JSONResponse(status_code=status_code, content=body)


def generic_exception_handler(request: Request, exc: Exception):
    """Handles all unhandled exceptions (500 Internal Server Error)."""
    log.error(f"Unhandled exception on path: {request.url.path}", exc_info=exc)

    body = {
        "success": False,
        "error": {
            "code": "server_error",
            "message": "Internal Server Error",
        },
        "request_id": _rid(),
    }
    return JSONResponse(status_code=500, content=body)


# ----------- Registration Function -----------

def setup_exception_handlers(app: FastAPI):
    """Registers all custom exception handlers with the FastAPI application."""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(InventoryError, inventory_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app
