"""
Connection State Models
=======================

This module defines the published state of the stream controller.

Core Concepts:
    - StreamStatus: Discrete connection states (IDLE, CONNECTING, STREAMING, ERROR)
    - ConnectionState: Immutable snapshot published to observers

Transitions:
    IDLE       -> CONNECTING: start()
    CONNECTING -> STREAMING:  2xx response header
    CONNECTING -> ERROR:      4xx/5xx status or transport failure
    STREAMING  -> ERROR:      4xx/5xx status, framing violation or transport failure
    STREAMING  -> IDLE:       stop() or clean close
    ERROR      -> IDLE:       stop()

The transport handle is never part of a published snapshot. Observers see
the status and, in ERROR, the reason; the controller keeps the handle private.

Example:
    from legocam_stream.models.state import ConnectionState, StreamStatus

    state = ConnectionState.idle()
    assert state.status == StreamStatus.IDLE
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from legocam_stream.models.errors import StreamError


class StreamStatus(str, Enum):
    """
    Discrete connection states.

    Attributes:
        IDLE: No connection, nothing in flight
        CONNECTING: Request issued, no success header yet
        STREAMING: Success header received, parts are being decoded
        ERROR: Connection failed; terminal until stop()/start()
    """

    IDLE = "IDLE"
    CONNECTING = "CONNECTING"
    STREAMING = "STREAMING"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class ConnectionState:
    """
    Published connection state snapshot.

    Attributes:
        status: Current discrete state
        error: Failure reason, set only when status is ERROR
    """

    status: StreamStatus
    error: Optional[StreamError] = None

    @classmethod
    def idle(cls) -> "ConnectionState":
        return cls(StreamStatus.IDLE)

    @classmethod
    def connecting(cls) -> "ConnectionState":
        return cls(StreamStatus.CONNECTING)

    @classmethod
    def streaming(cls) -> "ConnectionState":
        return cls(StreamStatus.STREAMING)

    @classmethod
    def failed(cls, error: StreamError) -> "ConnectionState":
        return cls(StreamStatus.ERROR, error)

    @property
    def is_active(self) -> bool:
        """Whether a transport handle is live in this state."""
        return self.status in (StreamStatus.CONNECTING, StreamStatus.STREAMING)

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "error": self.error.to_dict() if self.error else None,
        }
