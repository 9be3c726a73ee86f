"""Executor error hierarchy.

Every error carries a message meant to be shown to the user as-is; str(error)
is that message. An HTTP 4xx/5xx response is not an error.
"""

from __future__ import annotations

TIMEOUT_MESSAGE = "Request timeout - The request took too long to complete"
NETWORK_ERROR_MESSAGE = (
    "Network error - Unable to connect to the server. Check if the server is running."
)


class ExecutorError(Exception):
    """Base class for executor errors."""


# Pre-flight errors: raised before any network I/O


class InvalidUrlError(ExecutorError):
    """Raised when the URL does not parse as an absolute URL after normalization."""


class InvalidMethodError(ExecutorError):
    """Raised when the method is not a legal HTTP method token."""


class ClientBuildError(ExecutorError):
    """Raised when the HTTP client cannot be constructed."""


# Transport errors: raised after the send was attempted


class RequestError(ExecutorError):
    """Base class for failures while sending the request."""


class RequestTimeoutError(RequestError):
    def __init__(self) -> None:
        super().__init__(TIMEOUT_MESSAGE)


class NetworkError(RequestError):
    def __init__(self) -> None:
        super().__init__(NETWORK_ERROR_MESSAGE)


class RequestFailedError(RequestError):
    """Any other transport failure. The message embeds the underlying error."""

    def __init__(self, detail: str) -> None:
        super().__init__(f"Request failed: {detail}")
        self.detail = detail
