"""
api/errors.py -- Turn domain Failures into HTTP responses.

Domain layers return Failure values for expected outcomes; this is the one
place they become HTTPException. The exception handler in api/main.py then
wraps the structured detail in the shared ErrorResponse envelope.
"""

from __future__ import annotations

from fastapi import HTTPException

from api.models import ErrorDetail
from core.errors import Failure
from openings.models import Opening, OpeningResult


def failure_to_http(failure: Failure) -> HTTPException:
    return HTTPException(
        status_code=failure.http_status,
        detail=ErrorDetail(code=failure.error_code, message=failure.message, detail=failure.detail).model_dump(),
    )


def unwrap(result: OpeningResult) -> Opening:
    """Return the opening, or raise the HTTP form of the failure."""
    if result.failure is not None:
        raise failure_to_http(result.failure)
    return result.opening
