"""Mapping of domain exceptions to HTTP responses"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from accounts_gateway.domain import exceptions as exc

STATUS_CODES = {
    exc.InvalidAmount: 422,
    exc.InvalidCount: 422,
    exc.InvalidTarget: 422,
    exc.InvalidDueDate: 422,
    exc.AmountExceedsBalance: 409,
    exc.AlreadySettled: 409,
    exc.InstallmentLocked: 409,
    exc.DuplicateDocument: 409,
    exc.RegisterAlreadyOpen: 409,
    exc.AccountNotFound: 404,
    exc.InstallmentNotFound: 404,
    exc.ConcurrentModification: 409,
    exc.LedgerPostFailed: 503,
    exc.LedgerUnavailable: 503,
    exc.LedgerTimeout: 503,
    exc.NoOpenRegister: 409,
    exc.PayloadTooLarge: 413,
    exc.UnsupportedFormat: 415,
}


def status_for(error: exc.DomainException) -> int:
    for cls in type(error).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


async def domain_exception_handler(request: Request, error: exc.DomainException) -> JSONResponse:
    status_code = status_for(error)
    log = logging.error if status_code >= 500 else logging.warning
    log(
        f"Request failed: {error.code}",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "path": request.url.path,
            "error": error.code,
        },
    )
    return JSONResponse(
        status_code=status_code,
        content={"error": error.code, "detail": error.detail, "retryable": error.retryable},
    )


async def unhandled_exception_handler(request: Request, error: Exception) -> JSONResponse:
    logging.error(
        f"Unexpected error: {error}",
        extra={"request_id": getattr(request.state, "request_id", "unknown"), "path": request.url.path},
    )
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "detail": "Internal server error", "retryable": False},
    )
