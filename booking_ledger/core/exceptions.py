from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from booking_ledger.core.request_context import request_id_ctx_var


class BookingEngineError(HTTPException):
    """Base class for caller-correctable engine errors.

    Subclasses carry a stable ``code`` that ends up in the error envelope so the
    calling layer can pick its retry policy without parsing messages.
    """

    http_status: int = status.HTTP_400_BAD_REQUEST
    code: str = "booking_engine_error"
    default_detail: str = "Request cannot be processed"

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None) -> None:
        super().__init__(status_code=self.http_status, detail=detail or self.default_detail, headers=headers)


class InvalidWindow(BookingEngineError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "invalid_window"
    default_detail = "Invalid availability window"


class SlotUnavailable(BookingEngineError):
    http_status = status.HTTP_409_CONFLICT
    code = "slot_unavailable"
    default_detail = "Slot is no longer available. Refresh availability and retry."


class InsufficientCredit(BookingEngineError):
    http_status = status.HTTP_402_PAYMENT_REQUIRED
    code = "insufficient_credit"
    default_detail = "Pack has no remaining credit"


class InvalidTransition(BookingEngineError):
    http_status = status.HTTP_409_CONFLICT
    code = "invalid_transition"
    default_detail = "Status transition is not allowed"


class TransientStorageError(BookingEngineError):
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "storage_busy"
    default_detail = "Storage is busy. Retry the request."

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail=detail, headers={"Retry-After": "1"})


def _error_payload(code: str, message: str, detail):
    return {
        "error": {
            "code": code,
            "message": message,
            "detail": detail,
        },
        "detail": detail,
        "request_id": request_id_ctx_var.get(),
    }


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    code = exc.code if isinstance(exc, BookingEngineError) else f"http_{exc.status_code}"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(
            code=code,
            message=str(exc.detail),
            detail=exc.detail,
        ),
        headers=exc.headers,
    )


async def validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    # ctx may hold the raised exception object, which is not JSON serializable.
    errors = [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_payload(
            code="validation_error",
            message="Request validation failed",
            detail=errors,
        ),
    )
