"""PayCrest error type — the only exception the status client raises."""

from typing import Optional


class PaycrestError(Exception):
    """Transport failure, non-2xx response, or malformed order payload."""

    def __init__(self, message: str, status: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.code = code
