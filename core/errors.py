"""
core/errors.py -- Outcome taxonomy shared by the domain layers.

NotFound / Forbidden / AlreadyClosed are expected outcomes of ordinary
requests, not faults. Domain operations return them as Failure values; only
the API layer turns a Failure into an HTTP response. Genuinely unexpected
problems (database unreachable, corrupt stored JSON) are left to propagate as
exceptions and end up in the catch-all 500 handler in api/main.py.

Layer rule: no imports from api/, auth/, openings/, or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    UNAUTHENTICATED = "unauthorized"


HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHENTICATED: 401,
}


@dataclass(frozen=True)
class Failure:
    """A typed, expected failure.

    code defaults to kind.value; set it when the client needs a finer signal
    than the kind (e.g. "already_closed" for a CONFLICT).
    """

    kind: ErrorKind
    message: str
    code: str = ""
    detail: str | None = None

    @property
    def error_code(self) -> str:
        return self.code or self.kind.value

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.kind]


def validation_failed(message: str, detail: str | None = None) -> Failure:
    return Failure(ErrorKind.VALIDATION, message, detail=detail)


def not_found(message: str) -> Failure:
    return Failure(ErrorKind.NOT_FOUND, message)


def forbidden(message: str) -> Failure:
    return Failure(ErrorKind.FORBIDDEN, message)


def already_closed(message: str = "Opening is already closed.") -> Failure:
    return Failure(ErrorKind.CONFLICT, message, code="already_closed")
