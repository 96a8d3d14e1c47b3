from __future__ import annotations

import functools
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from django.db import IntegrityError
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    AuthenticationFailed,
    MethodNotAllowed,
    NotAuthenticated,
    NotFound,
    ParseError,
    PermissionDenied,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

GENERIC_SERVER_ERROR_MESSAGE = "An unexpected error occurred."

EXCEPTION_CODE_MAP: dict[type[Exception], str] = {
    ValidationError: "validation_error",
    NotAuthenticated: "not_authenticated",
    AuthenticationFailed: "authentication_failed",
    PermissionDenied: "permission_denied",
    NotFound: "not_found",
    MethodNotAllowed: "method_not_allowed",
    ParseError: "parse_error",
}

RESULT_STATUS_MAP: dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "internal_error": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class ServiceError(Exception):
    """Expected business failure raised inside a service operation."""

    default_code = "validation_error"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        self.code = code or self.default_code
        super().__init__(message)


class RecordNotFound(ServiceError):
    default_code = "not_found"


class StateConflict(ServiceError):
    default_code = "conflict"


@dataclass
class OperationResult:
    success: bool
    id: Any = None
    count: int | None = None
    error: str | None = None
    code: str | None = None

    @classmethod
    def ok(cls, *, id=None, count=None) -> "OperationResult":
        return cls(success=True, id=id, count=count)

    @classmethod
    def failed(cls, error: str, *, code: str = "validation_error") -> "OperationResult":
        return cls(success=False, error=error, code=code)

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.id is not None:
            payload["id"] = str(self.id)
        if self.count is not None:
            payload["count"] = self.count
        if not self.success:
            payload["error"] = self.error
        return payload


def service_operation(*, failure_message: str, conflict_message: str | None = None):
    """Turn a service function into one that always returns an OperationResult.

    ServiceError keeps its own message; an IntegrityError becomes
    ``conflict_message`` when one is given; anything else is logged and
    reported as ``failure_message`` so internal detail never reaches callers.
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ServiceError as exc:
                return OperationResult.failed(exc.message, code=exc.code)
            except IntegrityError:
                if conflict_message:
                    logger.warning("Integrity conflict in %s", func.__name__, exc_info=True)
                    return OperationResult.failed(conflict_message, code="conflict")
                logger.exception("Integrity error in %s", func.__name__)
                return OperationResult.failed(failure_message, code="internal_error")
            except Exception:
                logger.exception("Unhandled error in %s", func.__name__)
                return OperationResult.failed(failure_message, code="internal_error")

        return wrapper

    return decorator


def build_error_envelope(
    *,
    code: str,
    message: str,
    errors: Any,
    status_code: int,
) -> dict[str, Any]:
    return {
        "code": code,
        "message": message,
        "errors": errors,
        "status": status_code,
    }


def error_response(
    *,
    code: str,
    message: str,
    errors: Any = None,
    status_code: int = status.HTTP_400_BAD_REQUEST,
) -> Response:
    return Response(
        build_error_envelope(
            code=code,
            message=message,
            errors=errors,
            status_code=status_code,
        ),
        status=status_code,
    )


def operation_response(result: OperationResult, *, success_status: int = status.HTTP_200_OK) -> Response:
    if result.success:
        return Response(result.as_dict(), status=success_status)
    code = result.code or "validation_error"
    return error_response(
        code=code,
        message=result.error or GENERIC_SERVER_ERROR_MESSAGE,
        status_code=RESULT_STATUS_MAP.get(code, status.HTTP_400_BAD_REQUEST),
    )


def custom_exception_handler(exc: Exception, context: dict[str, Any]) -> Response:
    response = drf_exception_handler(exc, context)

    if response is None:
        view_name = context.get("view").__class__.__name__ if context.get("view") else "unknown"
        logger.exception("Unhandled API exception in %s", view_name)
        return error_response(
            code="internal_server_error",
            message=GENERIC_SERVER_ERROR_MESSAGE,
            errors=None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    status_code = response.status_code
    errors = _normalize_errors(response.data)
    message = _build_message(exc, response.data)
    code = _build_code(exc)

    response.data = build_error_envelope(
        code=code,
        message=message,
        errors=errors,
        status_code=status_code,
    )
    return response


def _build_code(exc: Exception) -> str:
    for exception_type, stable_code in EXCEPTION_CODE_MAP.items():
        if isinstance(exc, exception_type):
            return stable_code

    if isinstance(exc, APIException):
        return str(getattr(exc, "default_code", "api_error"))

    return "internal_server_error"


def _build_message(exc: Exception, data: Any) -> str:
    if isinstance(exc, ValidationError):
        return "Validation failed."

    detail = None
    if isinstance(data, Mapping):
        detail = data.get("detail")
    elif isinstance(data, str):
        detail = data

    if detail:
        return str(detail)

    if isinstance(exc, APIException):
        return str(getattr(exc, "detail", "Request failed."))

    return GENERIC_SERVER_ERROR_MESSAGE


def _normalize_errors(data: Any) -> Any:
    if isinstance(data, Mapping):
        if set(data.keys()) == {"detail"}:
            return None
        return data

    if isinstance(data, Sequence) and not isinstance(data, str):
        return data

    return None
