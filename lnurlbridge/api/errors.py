"""Mapping of domain errors to LNURL error responses.

Every error body has the LNURL shape ``{"status": "ERROR", "reason": ...}``.
"""

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from lnurlbridge.domain.schemas import StatusResponse
from lnurlbridge.exceptions import (
    LnurlBridgeError,
    SignatureVerificationError,
    ValidationError,
)
from lnurlbridge.utils.logging import get_logger

logger = get_logger(__name__)

# First match wins, so subclasses go before their bases.
_STATUS_BY_ERROR: tuple[tuple[type[LnurlBridgeError], int], ...] = (
    (SignatureVerificationError, 401),
    (ValidationError, 400),
    (LnurlBridgeError, 500),
)


def status_code_for(error: LnurlBridgeError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


def error_response(reason: str, status_code: int) -> JSONResponse:
    return JSONResponse(StatusResponse.error(reason).to_wire(), status_code=status_code)


async def handle_lnurl_error(request: Request, exc: LnurlBridgeError) -> JSONResponse:
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.info
    log(
        "lnurl_request_failed",
        path=request.url.path,
        status_code=status_code,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return error_response(exc.message, status_code)


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report missing or malformed query parameters as a 400 LNURL error."""
    fields = sorted(
        {str(err["loc"][-1]) for err in exc.errors() if err.get("loc")}
    )
    reason = f"Missing or invalid parameter: {', '.join(fields)}" if fields else "Invalid request"
    logger.info("lnurl_request_invalid", path=request.url.path, fields=fields)
    return error_response(reason, 400)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LnurlBridgeError, handle_lnurl_error)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, handle_request_validation_error  # type: ignore[arg-type]
    )
