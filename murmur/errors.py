"""Error taxonomy for murmur.

Every failure the engine can surface derives from MurmurError so that
callers (one-shot commands, the chat shell) catch a single type.
File access failures stay plain OSError.
"""

from __future__ import annotations


class MurmurError(Exception):
    """Base class for request failures."""


class TransportError(MurmurError):
    """The HTTP exchange itself failed (connect, read, protocol)."""


class ServiceError(MurmurError):
    """The service answered with an error.

    Raised for any non-200 status (message is the response body) and for
    an in-stream ``{"error": "..."}`` object on a 200 response.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"HTTP {self.status_code}: {self.message}"
        return self.message


class DecodeError(MurmurError):
    """Response bytes were not valid UTF-8/JSON where a value was expected."""


class ProtocolViolation(MurmurError):
    """A streamed chat fragment did not have the chat response shape.

    Never raised by the engine. ChatPrinter records it and stops the
    stream instead.
    """

    def __init__(self, message: str, value: object = None) -> None:
        super().__init__(message)
        self.value = value
