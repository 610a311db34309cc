"""Exception hierarchy shared by the harness components."""
from __future__ import annotations

from typing import Any, Optional


class HarnessError(Exception):
    """Base class for all harness errors."""
    pass


class WaitTimeoutError(HarnessError, TimeoutError):
    """A bounded wait (inbox poll or DOM condition) ran out of time."""

    def __init__(self, what: str, timeout: float):
        super().__init__(f"Timed out after {timeout:g}s waiting for {what}")
        self.what = what
        self.timeout = timeout


class TransportError(HarnessError):
    """A call to the product API or the mailbox service failed on the wire."""
    pass


class ProductApiError(TransportError):
    """The product API answered with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ClassificationError(HarnessError):
    """No known registration page variant matched the landed page."""
    pass


class FixtureError(HarnessError):
    """The invited-accounts fixture file is missing, empty or malformed."""
    pass


class ConfigError(HarnessError):
    """Required configuration is missing."""
    pass


class FlowError(HarnessError):
    """A control the activation flow requires is missing from the page."""
    pass
