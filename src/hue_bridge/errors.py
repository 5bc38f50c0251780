"""Exception hierarchy for bridge operations."""

from __future__ import annotations

from typing import Any, Optional


class HueError(Exception):
    """Base class for all client errors."""


class InputValidationError(HueError, ValueError):
    """Raised for malformed credentials or arguments before any network attempt."""


class BridgeRequestError(HueError):
    """Raised by query operations when the HTTP exchange fails."""

    def __init__(self, reason: Any) -> None:
        super().__init__(str(reason))
        self.reason = reason


class ResponseDecodeError(HueError):
    """Raised when a response body is not valid JSON."""

    def __init__(self, message: str, body: Optional[str] = None) -> None:
        super().__init__(message)
        self.body = body


class StreamTransportError(HueError):
    """Raised when the streaming connection cannot be opened, used or closed."""

    def __init__(self, reason: Any) -> None:
        super().__init__(str(reason))
        self.reason = reason
