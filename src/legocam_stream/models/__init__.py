"""
Data Models
===========

Typed models for LegoCamStream.

This module re-exports all data models for convenient access.

Models:
    Framing:
        - PartFraming: Content type and declared length of one part

    State:
        - StreamStatus: Enum of connection states (IDLE, CONNECTING, STREAMING, ERROR)
        - ConnectionState: Published connection snapshot

    Errors:
        - ErrorKind: Failure classes
        - StreamError: Reason carried by the ERROR state
"""

from legocam_stream.models.errors import ErrorKind, StreamError
from legocam_stream.models.framing import PartFraming
from legocam_stream.models.state import ConnectionState, StreamStatus

__all__ = [
    # Framing
    "PartFraming",
    # State
    "StreamStatus",
    "ConnectionState",
    # Errors
    "ErrorKind",
    "StreamError",
]
