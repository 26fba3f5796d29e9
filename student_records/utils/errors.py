"""Error types raised by the student record store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

UNIQUE_VIOLATION = "23505"


@dataclass
class StoreError(Exception):
    """Raised when the record store rejects or fails an operation."""

    message: str
    code: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - dataclass convenience
        return self.message


class EnrollmentConflictError(StoreError):
    """Raised when an insert collides with an existing enrollment number."""


def store_error_from(exc: Any, fallback: str) -> StoreError:
    """Translate a backend exception into a :class:`StoreError`.

    Parameters
    ----------
    exc:
        The exception raised by the backend. Postgrest ``APIError`` instances
        carry ``message`` and ``code`` attributes; anything else is reduced to
        its string form.
    fallback:
        Message used when the backend did not provide one.

    Returns
    -------
    StoreError
        An :class:`EnrollmentConflictError` when the backend reported a unique
        constraint violation, otherwise a plain :class:`StoreError`.
    """

    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc) or fallback
    if code is not None:
        code = str(code)
    if code == UNIQUE_VIOLATION:
        return EnrollmentConflictError(message, code)
    return StoreError(message, code)
