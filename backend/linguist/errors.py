"""Error taxonomy for the mastery engine.

Every failure a service raises is a ``LedgerError``. The HTTP layer maps the
subclasses onto status codes in ``main.py``; Python callers catch them
directly.
"""

from __future__ import annotations

from typing import List, Optional


class LedgerError(Exception):
    status_code: int = 500

    def __init__(self, message: str, details: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFound(LedgerError):
    """Unknown user, skill record, vocabulary card or lesson."""

    status_code = 404

    def __init__(self, resource: str, key: object) -> None:
        super().__init__(f"{resource} not found: {key}")
        self.resource = resource
        self.key = key


class InvalidArgument(LedgerError):
    """Out-of-range counts or scores, blank rule names, unknown levels."""

    status_code = 400


class Conflict(LedgerError):
    status_code = 409


class StorageError(LedgerError):
    """The persistence layer failed; the unit of work was rolled back."""

    status_code = 500
