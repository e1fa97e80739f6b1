"""
Stream Errors
=============

Fixed taxonomy of connection failures reported by the stream controller.

Every failure that ends a connection is funneled into exactly one
StreamError value, which is carried by the ERROR connection state.

Rules:
    - Input errors (malformed address) are NOT stream errors
    - One kind per failure class
    - Status code only for HTTP_STATUS
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """
    Machine-readable failure classes.

    Attributes:
        INVALID_RESPONSE: Response could not be interpreted
        INVALID_DATA: Part overflowed its declared length
        HTTP_STATUS: Server answered with a 4xx/5xx status
        DECODE_FAILED: Correctly sized parts repeatedly failed to decode
        TRANSPORT: Connect timeout, read failure, TLS failure, etc.
    """

    INVALID_RESPONSE = "INVALID_RESPONSE"
    INVALID_DATA = "INVALID_DATA"
    HTTP_STATUS = "HTTP_STATUS"
    DECODE_FAILED = "DECODE_FAILED"
    TRANSPORT = "TRANSPORT"


@dataclass(frozen=True, slots=True)
class StreamError:
    """
    Reason a connection entered the ERROR state.

    Attributes:
        kind: Failure class
        status_code: HTTP status (HTTP_STATUS only)
        detail: Free-form description from the underlying failure
    """

    kind: ErrorKind
    status_code: Optional[int] = None
    detail: Optional[str] = None

    @classmethod
    def invalid_response(cls, detail: Optional[str] = None) -> "StreamError":
        return cls(ErrorKind.INVALID_RESPONSE, detail=detail)

    @classmethod
    def invalid_data(cls, detail: Optional[str] = None) -> "StreamError":
        return cls(ErrorKind.INVALID_DATA, detail=detail)

    @classmethod
    def http_status(cls, status_code: int) -> "StreamError":
        return cls(ErrorKind.HTTP_STATUS, status_code=status_code)

    @classmethod
    def decode_failed(cls, detail: Optional[str] = None) -> "StreamError":
        return cls(ErrorKind.DECODE_FAILED, detail=detail)

    @classmethod
    def transport(cls, detail: str) -> "StreamError":
        return cls(ErrorKind.TRANSPORT, detail=detail)

    @property
    def description(self) -> str:
        """Human-readable message for the UI."""
        if self.kind == ErrorKind.INVALID_RESPONSE:
            return "Received an invalid response from the server."
        if self.kind == ErrorKind.INVALID_DATA:
            return "Received invalid data from the server."
        if self.kind == ErrorKind.HTTP_STATUS:
            return f"An HTTP error occurred (code {self.status_code})."
        if self.kind == ErrorKind.DECODE_FAILED:
            return "Received images that could not be decoded."
        return self.detail or "The connection failed."

    def to_dict(self) -> dict:
        """Export as JSON-friendly dict."""
        return {
            "kind": self.kind.value,
            "status_code": self.status_code,
            "detail": self.detail,
            "description": self.description,
        }

    def __str__(self) -> str:
        return self.description
