"""Error types and the handlers that render them.

Every error leaves the API as {"error": {"code", "message", "details?"}}.
Services raise VinePalletException subclasses; framework and database
errors are mapped here so routers never format errors themselves.
"""

import logging
from typing import Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class VinePalletException(Exception):
    """Base for errors that are answers to the caller, not server faults."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: Union[dict, list, None] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details


class BusinessLogicError(VinePalletException):
    """A pallet, cart or zone rule refuses the request (422)."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_code = "BUSINESS_LOGIC_ERROR"


class ResourceNotFoundError(VinePalletException):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found: {identifier}")


class PermissionDeniedError(VinePalletException):
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "PERMISSION_DENIED"

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class ServiceUnavailableError(VinePalletException):
    """A fail-closed check could not run; the caller should retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_code = "SERVICE_UNAVAILABLE"


# ── Error envelope ───────────────────────────────────────────

def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Render {"error": {"code", "message", "details?"}}."""
    error = {"code": error_code, "message": message}
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


# ── Integrity errors ─────────────────────────────────────────

# (markers that must all appear in the driver message, error code, message).
# Postgres names the table and constraint; SQLite names "table.column" for
# unique violations only. First match wins.
INTEGRITY_RULES: list[tuple[tuple[str, ...], str, str]] = [
    (
        ("producer_group_members", "producer_id"),
        "PRODUCER_ALREADY_GROUPED",
        "A producer can belong to only one producer group",
    ),
    (
        ('update or delete on table "pallet_zones"',),
        "ZONE_IN_USE",
        "Zone is still used by pallets, producers or reservations",
    ),
    (
        ('update or delete on table "pallets"',),
        "PALLET_IN_USE",
        "Pallet still has reservations",
    ),
    (("wine_id",), "WINE_NOT_FOUND", "Wine does not exist"),
    (("zone_id",), "ZONE_NOT_FOUND", "Zone does not exist"),
    (("pallet_id",), "PALLET_NOT_FOUND", "Pallet does not exist"),
]


def classify_integrity_error(driver_message: str) -> tuple[str, str]:
    """Map a driver constraint message to (error_code, message)."""
    text = driver_message.lower()
    for markers, error_code, message in INTEGRITY_RULES:
        if all(m.lower() in text for m in markers):
            return error_code, message
    return "INTEGRITY_ERROR", "Database constraint violation"


# ── Handlers ─────────────────────────────────────────────────

async def vinepallet_exception_handler(
    request: Request,
    exc: VinePalletException,
) -> JSONResponse:
    logger.warning(
        "%s %s -> %s: %s", request.method, request.url.path, exc.error_code, exc.message
    )
    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    """401 from the bearer check, 400 without a cart session, 404/405 routing."""
    if exc.status_code >= 500:
        logger.error("%s %s -> HTTP %d: %s", request.method, request.url.path,
                     exc.status_code, exc.detail)
    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    errors = [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.info("Rejected request body on %s (%d error(s))", request.url.path, len(errors))
    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def integrity_exception_handler(
    request: Request,
    exc: IntegrityError,
) -> JSONResponse:
    """Constraint violations that slipped past the routers' own checks (races)."""
    driver_message = str(exc.orig) if exc.orig is not None else str(exc)
    error_code, message = classify_integrity_error(driver_message)
    logger.error(
        "Integrity error on %s %s (%s): %s",
        request.method, request.url.path, error_code, driver_message,
    )
    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message=message,
        error_code=error_code,
    )


async def operational_exception_handler(
    request: Request,
    exc: OperationalError,
) -> JSONResponse:
    logger.error("Database unavailable on %s %s: %s", request.method, request.url.path, exc)
    return create_error_response(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        message="Database temporarily unavailable. Please try again.",
        error_code="DATABASE_UNAVAILABLE",
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    logger.error("Unhandled exception on %s %s", request.method, request.url.path,
                 exc_info=exc)
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    app.add_exception_handler(VinePalletException, vinepallet_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
