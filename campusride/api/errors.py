"""Maps engine failures onto HTTP responses."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

from campusride.domain import errors

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[errors.BookingEngineError], int] = {
    errors.InvalidInput: 400,
    errors.NotFound: 404,
    errors.NotAuthorized: 403,
    errors.InvalidParticipants: 403,
    errors.InvalidTransition: 409,
    errors.SeatsUnavailable: 409,
    errors.DuplicateBooking: 409,
    errors.DeadlineExpired: 409,
    errors.AlreadyConfirmed: 409,
    errors.NotEligible: 409,
    errors.PaymentError: 502,
    errors.StoreError: 503,
}


def status_code_for(exc: errors.BookingEngineError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return 500


async def engine_error_handler(
    request: Request, exc: errors.BookingEngineError
) -> JSONResponse:
    status_code = status_code_for(exc)
    if exc.retryable:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code, "detail": exc.message, "retryable": exc.retryable},
    )
