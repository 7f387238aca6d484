from contextlib import contextmanager

from fastapi import HTTPException, status

from cafe_engine.domain.exceptions import (
    BookingValidationError,
    CafeEngineError,
    CancellationWindowClosedError,
    ConflictError,
    NotFoundError,
    OTPConsumedError,
    OTPInvalidError,
    WrongStateError,
)

# Most specific first.
_STATUS_CODES = (
    (BookingValidationError, status.HTTP_400_BAD_REQUEST),
    (OTPInvalidError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (OTPConsumedError, status.HTTP_409_CONFLICT),
    (CancellationWindowClosedError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (WrongStateError, status.HTTP_409_CONFLICT),
)


def to_http_exception(exc: CafeEngineError) -> HTTPException:
    for error_type, status_code in _STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=str(exc),
    )


@contextmanager
def domain_errors():
    try:
        yield
    except CafeEngineError as exc:
        raise to_http_exception(exc) from exc
