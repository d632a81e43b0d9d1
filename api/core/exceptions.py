from typing import Any, Dict, Optional
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import traceback

from utils.logging import get_logger

logger = get_logger(__name__)

# Single user-facing message for every authentication failure
GENERIC_LOGIN_ERROR = "Error al iniciar sesión"


class BaseAPIException(Exception):
    """Base exception class for the console API"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BaseAPIException):
    """Validation error exception"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=details
        )


class AuthenticationError(BaseAPIException):
    """Authentication error exception"""

    def __init__(self, message: str = "Authentication required", error_code: str = "AUTHENTICATION_ERROR"):
        super().__init__(
            message=message,
            status_code=401,
            error_code=error_code
        )


class InvalidCredentials(AuthenticationError):
    """Backend rejected the submitted email/password"""

    def __init__(self, message: str = GENERIC_LOGIN_ERROR):
        super().__init__(message=message, error_code="INVALID_CREDENTIALS")


class SessionExpired(AuthenticationError):
    """Session could not be refreshed; the user must log in again"""

    def __init__(self, message: str = "Session expired"):
        super().__init__(message=message, error_code="SESSION_EXPIRED")


class AuthorizationError(BaseAPIException):
    """Authorization error exception"""

    def __init__(self, message: str = "Insufficient permissions", error_code: str = "AUTHORIZATION_ERROR"):
        super().__init__(
            message=message,
            status_code=403,
            error_code=error_code
        )


class PermissionDenied(AuthorizationError):
    """Authenticated caller lacks permission (no refresh attempted)"""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message=message, error_code="PERMISSION_DENIED")


class NotFoundError(BaseAPIException):
    """Not found error exception"""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(
            message=message,
            status_code=404,
            error_code="NOT_FOUND_ERROR"
        )


class ConflictError(BaseAPIException):
    """Conflict error exception"""

    def __init__(
        self,
        message: str = "Resource conflict",
        error_code: str = "CONFLICT_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            status_code=409,
            error_code=error_code,
            details=details
        )


class ConflictingActiveCode(ConflictError):
    """An active activation code already exists for the whitelist entry"""

    def __init__(self, message: str = "An active activation code already exists for this entry", code_id: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="CONFLICTING_ACTIVE_CODE",
            details={"code_id": code_id} if code_id else None
        )


class SupervisorRequired(BaseAPIException):
    """Field agent entries need a resolvable supervisor"""

    def __init__(self, message: str = "Field agents require an active supervisor"):
        super().__init__(
            message=message,
            status_code=422,
            error_code="SUPERVISOR_REQUIRED"
        )


class CodeInactiveError(BaseAPIException):
    """Redemption against a code that is no longer active"""

    def __init__(self, message: str, error_code: str, status_code: int = 410, code_id: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details={"code_id": code_id} if code_id else None
        )


class CodeAlreadyUsed(CodeInactiveError):
    def __init__(self, message: str = "Activation code has already been used", code_id: Optional[str] = None):
        super().__init__(message, "CODE_ALREADY_USED", code_id=code_id)


class CodeRevoked(CodeInactiveError):
    def __init__(self, message: str = "Activation code has been revoked", code_id: Optional[str] = None):
        super().__init__(message, "CODE_REVOKED", code_id=code_id)


class CodeExpired(CodeInactiveError):
    def __init__(self, message: str = "Activation code has expired", code_id: Optional[str] = None):
        super().__init__(message, "CODE_EXPIRED", code_id=code_id)


class AttemptLimitExceeded(CodeInactiveError):
    def __init__(self, message: str = "Maximum activation attempts exceeded", code_id: Optional[str] = None):
        super().__init__(message, "ATTEMPT_LIMIT_EXCEEDED", status_code=423, code_id=code_id)


class ExternalServiceError(BaseAPIException):
    """External service error exception"""

    def __init__(
        self,
        message: str = "External service error",
        service_name: str = "unknown",
        status_code: int = 502,
        error_code: str = "EXTERNAL_SERVICE_ERROR"
    ):
        super().__init__(
            message=message,
            status_code=status_code,
            error_code=error_code,
            details={"service": service_name}
        )


class UpstreamUnavailable(ExternalServiceError):
    """Platform backend unreachable or failing with 5xx"""

    def __init__(self, message: str = "Backend no disponible", service_name: str = "backend"):
        super().__init__(message=message, service_name=service_name, error_code="UPSTREAM_UNAVAILABLE")


class UpstreamTimeout(ExternalServiceError):
    """Platform backend did not answer within the request timeout"""

    def __init__(self, message: str = "Backend timed out", service_name: str = "backend"):
        super().__init__(
            message=message,
            service_name=service_name,
            status_code=504,
            error_code="UPSTREAM_TIMEOUT"
        )


async def base_api_exception_handler(request: Request, exc: BaseAPIException) -> JSONResponse:
    """Handler for BaseAPIException and subclasses"""

    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"API Exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.error_code,
                "message": exc.message,
                "details": exc.details
            },
            "path": request.url.path,
            "method": request.method
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for HTTPException"""

    logger.warning(
        f"HTTP Exception: {exc.status_code} - {exc.detail}",
        extra={
            "status_code": exc.status_code,
            "path": request.url.path,
            "method": request.method,
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": "HTTP_ERROR",
                "message": exc.detail,
                "details": {}
            },
            "path": request.url.path,
            "method": request.method
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for RequestValidationError"""

    logger.warning(
        f"Validation Error on {request.method} {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
        }
    )

    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": {
                    "errors": [
                        {"loc": list(err.get("loc", [])), "msg": err.get("msg"), "type": err.get("type")}
                        for err in exc.errors()
                    ]
                }
            },
            "path": request.url.path,
            "method": request.method
        }
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for every other exception"""

    logger.error(
        f"Unhandled Exception: {type(exc).__name__}",
        extra={
            "path": request.url.path,
            "method": request.method,
        }
    )
    logger.debug(traceback.format_exc())

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An internal error occurred",
                "details": {
                    "type": type(exc).__name__
                }
            },
            "path": request.url.path,
            "method": request.method
        }
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register every exception handler on the FastAPI app"""

    app.add_exception_handler(BaseAPIException, base_api_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    logger.info("Exception handlers registered successfully")
