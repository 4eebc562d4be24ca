"""Service-level errors and their HTTP rendering."""
import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    status_code = 500
    code = "internal_error"
    default_detail = "Unexpected failure"

    def __init__(self, detail: Optional[str] = None, **extra):
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        body = {"error": self.code, "detail": self.detail}
        body.update(self.extra)
        return body


class Unauthorized(ServiceError):
    status_code = 401
    code = "unauthorized"
    default_detail = "Missing or invalid credentials"


class Forbidden(ServiceError):
    status_code = 403
    code = "forbidden"
    default_detail = "Admin access required"


class NotFound(ServiceError):
    status_code = 404
    code = "not_found"
    default_detail = "Not found"


class InvalidTransition(ServiceError):
    status_code = 409
    code = "invalid_transition"
    default_detail = "Donation cannot move to the requested status"


class AlreadyClaimed(ServiceError):
    status_code = 409
    code = "already_claimed"
    default_detail = "Donation was already claimed by someone else"


class NotApproved(ServiceError):
    status_code = 409
    code = "not_approved"
    default_detail = "Donation is not approved yet"


class ValidationFailed(ServiceError):
    status_code = 422
    code = "validation_failed"
    default_detail = "Invalid input"


class RateLimited(ServiceError):
    status_code = 429
    code = "rate_limited"
    default_detail = "Rate limit exceeded. Please try again later."


class StorageUnavailable(ServiceError):
    status_code = 503
    code = "storage_unavailable"
    default_detail = "Storage is unavailable"


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": ServiceError.code, "detail": ServiceError.default_detail},
    )
