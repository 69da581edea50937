"""Result-to-HTTP translation."""

from typing import Any, Callable, TypeVar

from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, TypeAdapter

from rigger_billing.errors import ErrorCode
from rigger_billing.services.results import Failure, Result

T = TypeVar("T")

STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.INVALID_AMOUNT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.ALREADY_PROCESSED: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_DUE: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATE_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.RECONCILIATION_MISMATCH: status.HTTP_409_CONFLICT,
    ErrorCode.PROCESSOR_FAILURE: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def failure_response(failure: Failure) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(failure.code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={
            "success": False,
            "error": {"code": failure.code.value, "message": failure.message},
        },
    )


def to_json(value: Any) -> Any:
    """JSON-ready form of a pydantic model, dataclass or plain value."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return TypeAdapter(type(value)).dump_python(value, mode="json")


def _identity(value: Any) -> Any:
    return value


def respond(
    result: Result[T],
    to_data: Callable[[T], Any] = _identity,
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    """Success envelope, or the failure mapped to its HTTP status."""
    if isinstance(result, Failure):
        return failure_response(result)
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": to_json(to_data(result.value))},
    )
