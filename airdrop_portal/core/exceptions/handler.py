"""
Centralized error handling for the airdrop API.
Every failure leaves the service as the same JSON envelope:
``{"success": false, "message": ..., "code": ..., "errors"?: [...], "error"?: ...}``.
"""

import traceback
from typing import Dict, Any, Optional, List
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from airdrop_portal.core.logger.logger import get_logger
from airdrop_portal.infra.config.settings import get_settings

logger = get_logger(__name__)
settings = get_settings()


class ServiceErrorCode:
    """Standard error codes for services"""

    # Validation
    INVALID_INPUT = "INVALID_INPUT"

    # Verification
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    CAPTCHA_FAILED = "CAPTCHA_FAILED"
    CAPTCHA_UNAVAILABLE = "CAPTCHA_UNAVAILABLE"

    # Claim workflow
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    ALREADY_CLAIMED = "ALREADY_CLAIMED"
    CLAIMS_PAUSED = "CLAIMS_PAUSED"
    CLAIM_PROCESSING_FAILED = "CLAIM_PROCESSING_FAILED"

    # Authorization
    UNAUTHORIZED = "UNAUTHORIZED"

    # Rate Limiting
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Blockchain
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"

    # System
    NOT_FOUND = "NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class ServiceError(Exception):
    """
    Standardized service error for internal use.
    Gets converted to proper HTTP response by error handler.

    ``details`` are merged into the top level of the response body, which is
    how evidence such as the prior ``txHash``/``claimDate`` reaches the client.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.context = context or {}
        self.headers = headers
        super().__init__(message)


class ErrorResponseBuilder:
    """Builds standardized error responses"""

    @staticmethod
    def build_error_response(
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        error: Optional[str] = None
    ) -> Dict[str, Any]:
        """Build standardized error response"""

        response: Dict[str, Any] = {
            "success": False,
            "message": message,
            "code": error_code,
        }

        if details:
            response.update(details)

        if errors:
            response["errors"] = errors

        if error:
            response["error"] = error

        return response


def _field_from_location(loc) -> str:
    # ('body', 'walletAddress') -> 'walletAddress'
    parts = [str(part) for part in loc if part not in ("body", "path", "query", "header")]
    return ".".join(parts) or ".".join(str(part) for part in loc)


class GlobalErrorHandler:
    """Global error handler for all application errors"""

    @staticmethod
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        """Handle ServiceError exceptions"""

        request_id = request.headers.get("X-Request-ID", "unknown")

        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"Service error: {exc.code}",
            extra={
                "error_code": exc.code,
                "error_message": exc.message,
                "status_code": exc.status_code,
                "context": exc.context,
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method
            }
        )

        response = ErrorResponseBuilder.build_error_response(
            error_code=exc.code,
            message=exc.message,
            details=exc.details
        )

        return JSONResponse(
            status_code=exc.status_code,
            content=response,
            headers=exc.headers
        )

    @staticmethod
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle framework HTTP exceptions (unknown routes, wrong methods)"""

        if exc.status_code == status.HTTP_404_NOT_FOUND:
            error_code = ServiceErrorCode.NOT_FOUND
            message = "Route not found"
        elif exc.status_code == status.HTTP_401_UNAUTHORIZED:
            error_code = ServiceErrorCode.UNAUTHORIZED
            message = "Unauthorized"
        elif exc.status_code >= 500:
            error_code = ServiceErrorCode.INTERNAL_ERROR
            message = str(exc.detail)
        else:
            error_code = ServiceErrorCode.INVALID_INPUT
            message = str(exc.detail)

        logger.warning(
            f"HTTP exception: {exc.status_code}",
            extra={
                "status_code": exc.status_code,
                "detail": exc.detail,
                "path": request.url.path,
                "method": request.method
            }
        )

        response = ErrorResponseBuilder.build_error_response(
            error_code=error_code,
            message=message
        )

        return JSONResponse(
            status_code=exc.status_code,
            content=response,
            headers=getattr(exc, "headers", None)
        )

    @staticmethod
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Handle Pydantic validation errors as field-level 400 responses"""

        request_id = request.headers.get("X-Request-ID", "unknown")

        validation_errors = []
        for error in exc.errors():
            validation_errors.append({
                "field": _field_from_location(error["loc"]),
                "message": error["msg"]
            })

        logger.warning(
            f"Validation error: {len(validation_errors)} errors",
            extra={
                "validation_errors": validation_errors,
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method
            }
        )

        response = ErrorResponseBuilder.build_error_response(
            error_code=ServiceErrorCode.INVALID_INPUT,
            message="Validation error",
            errors=validation_errors
        )

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=response
        )

    @staticmethod
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions"""

        request_id = request.headers.get("X-Request-ID", "unknown")

        logger.error(
            f"Unexpected error: {type(exc).__name__}",
            extra={
                "error_type": type(exc).__name__,
                "error_message": str(exc),
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc()
            }
        )

        # Never expose internal errors in production
        response = ErrorResponseBuilder.build_error_response(
            error_code=ServiceErrorCode.INTERNAL_ERROR,
            message="Internal server error",
            error=str(exc) if settings.DEBUG else None
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response
        )
