"""
Stream Controller
=================

Owner of the single motion-JPEG connection.

This module provides the StreamController class which:
    - Starts and stops one HTTP streaming request at a time
    - Sizes a FrameDemuxer from each part's headers
    - Feeds body chunks into the demuxer and publishes completed frames
    - Tracks connection health as IDLE / CONNECTING / STREAMING / ERROR
    - Drops events from superseded requests (stale handles)

Design Rules:
    - Single writer: every mutation happens on the owning event loop,
      either in start()/stop() or in a transport callback
    - start()/stop() never raise; failures end up in the ERROR state
    - stop() takes effect synchronously, whatever the transport is doing
    - A completed frame is published only while STREAMING
    - The controller is not an archive: frames are replaced, not kept

Decode policy:
    A part that decodes badly is discarded and the connection stays up.
    max_decode_failures consecutive bad parts fail the connection with
    DECODE_FAILED. A good part resets the count.
"""

import logging
import time
from typing import Mapping, Optional

import httpx

from legocam_stream.models.errors import StreamError
from legocam_stream.models.framing import PartFraming
from legocam_stream.models.state import ConnectionState, StreamStatus
from legocam_stream.stream.demuxer import FrameDemuxer, FramingError
from legocam_stream.stream.frame import Frame
from legocam_stream.stream.image_decoder import ImageDecodeError, ImageDecoder, decode_image
from legocam_stream.stream.multipart import MultipartError
from legocam_stream.stream.publisher import Published
from legocam_stream.stream.transport import (
    DEFAULT_CONNECT_TIMEOUT,
    HttpxTransport,
    Transport,
    TransportHandle,
)


logger = logging.getLogger(__name__)


DEFAULT_MAX_DECODE_FAILURES = 3


def parse_stream_url(address: str) -> Optional[httpx.URL]:
    """
    Parse a user-supplied stream address.

    Returns:
        Absolute http(s) URL, or None when the address is unusable
    """
    if not isinstance(address, str) or not address.strip():
        return None
    try:
        url = httpx.URL(address.strip())
    except (httpx.InvalidURL, TypeError, ValueError):
        return None
    if url.scheme not in ("http", "https") or not url.host:
        return None
    return url


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class StreamMetrics:
    """Counters for StreamController observability."""

    __slots__ = (
        "connections_started",
        "parts_started",
        "parts_discarded",
        "frames_published",
        "frames_dropped",
        "bytes_received",
        "bytes_ignored",
        "decode_failures",
        "framing_errors",
        "stale_events",
    )

    def __init__(self) -> None:
        self.connections_started: int = 0
        self.parts_started: int = 0
        self.parts_discarded: int = 0
        self.frames_published: int = 0
        self.frames_dropped: int = 0
        self.bytes_received: int = 0
        self.bytes_ignored: int = 0
        self.decode_failures: int = 0
        self.framing_errors: int = 0
        self.stale_events: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {name: getattr(self, name) for name in self.__slots__}


class StreamController:
    """
    Single-connection motion-JPEG client.

    Published values (read-only to everyone but the controller):
        state: ConnectionState snapshot
        image: Latest completed Frame, or None
        headers: Latest response/part header mapping, or None

    Attributes:
        connect_timeout: Seconds allowed for the connect phase
        max_decode_failures: Consecutive bad parts tolerated before failing
        metrics: Operational counters

    Example:
        controller = StreamController()
        controller.start("http://192.168.4.1/stream")

        async for frame in controller.image.subscribe():
            if frame is not None:
                show(frame.image)

        controller.stop()
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        max_decode_failures: int = DEFAULT_MAX_DECODE_FAILURES,
        decoder: ImageDecoder = decode_image,
    ) -> None:
        """
        Initialize controller.

        Args:
            transport: Request factory; defaults to HttpxTransport
            connect_timeout: Connect-phase timeout in seconds
            max_decode_failures: Must be >= 1
            decoder: Image decoder handed to each demuxer
        """
        if connect_timeout <= 0:
            raise ValueError("connect_timeout must be > 0")
        if max_decode_failures < 1:
            raise ValueError("max_decode_failures must be >= 1")

        self._transport: Transport = transport if transport is not None else HttpxTransport()
        self.connect_timeout = connect_timeout
        self.max_decode_failures = max_decode_failures
        self._decoder = decoder

        # Published outputs
        self.state: Published[ConnectionState] = Published("state", ConnectionState.idle())
        self.image: Published[Optional[Frame]] = Published("image", None)
        self.headers: Published[Optional[Mapping[str, str]]] = Published("headers", None)

        # Owned connection resources
        self._handle: Optional[TransportHandle] = None
        self._demuxer: Optional[FrameDemuxer] = None
        self._part_headers: Mapping[str, str] = {}
        self._sequence: int = 0
        self._consecutive_decode_failures: int = 0

        self.metrics = StreamMetrics()

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    @property
    def status(self) -> StreamStatus:
        return self.state.value.status

    @property
    def error(self) -> Optional[StreamError]:
        """Failure reason while in ERROR, else None."""
        return self.state.value.error

    @property
    def current_image(self) -> Optional[Frame]:
        return self.image.value

    @property
    def last_headers(self) -> Optional[Mapping[str, str]]:
        return self.headers.value

    @property
    def part_in_progress(self) -> bool:
        """Whether a demuxer is currently accumulating a part."""
        return self._demuxer is not None

    def snapshot(self) -> Optional[Frame]:
        """Current frame, for collaborators that capture on demand."""
        return self.image.value

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def start(self, address: str) -> None:
        """
        Open a streaming connection.

        No-op (with a logged diagnostic) while CONNECTING or STREAMING.
        A malformed address leaves the controller IDLE. Starting from ERROR
        also drops the failed connection's headers.

        Args:
            address: http(s) URL of the motion-JPEG endpoint
        """
        current = self.state.value
        if current.is_active:
            logger.error(
                f"Stream already started ({current.status.value}); "
                f"ignoring start({address!r})"
            )
            return

        # Whatever the previous connection left behind goes first.
        self._discard_part()
        self._consecutive_decode_failures = 0
        if self.image.value is not None:
            self.image.set(None)
        if current.status == StreamStatus.ERROR and self.headers.value is not None:
            self.headers.set(None)

        url = parse_stream_url(address)
        if url is None:
            logger.warning(f"Invalid stream address: {address!r}")
            self._set_state(ConnectionState.idle())
            return

        try:
            handle = self._transport.open(url, self, self.connect_timeout)
        except Exception as e:
            logger.error(f"Could not open stream to {url}: {e!r}")
            self._set_state(ConnectionState.failed(StreamError.transport(_describe(e))))
            return

        self._handle = handle
        self.metrics.connections_started += 1
        self._set_state(ConnectionState.connecting())

    def stop(self) -> None:
        """
        Close the connection. Idempotent; always ends IDLE with no frame.
        """
        handle = self._handle
        self._handle = None
        if handle is not None:
            logger.info(f"Stopping stream {handle!r}")
            handle.cancel()

        self._discard_part()
        if self.image.value is not None:
            self.image.set(None)
        if self.state.value.status != StreamStatus.IDLE:
            self._set_state(ConnectionState.idle())

    def close(self) -> None:
        """Stop and end every subscription. Used at shutdown."""
        self.stop()
        self.state.close()
        self.image.close()
        self.headers.close()

    # -------------------------------------------------------------------------
    # Transport events
    # -------------------------------------------------------------------------

    def on_response(
        self,
        handle: TransportHandle,
        status_code: int,
        headers: Mapping[str, str],
    ) -> None:
        """Handle the headers of a response or of one multipart part."""
        if not self._is_current(handle, "response"):
            return

        headers = httpx.Headers(headers)
        self.headers.set(headers)

        if 400 <= status_code < 600:
            logger.error(f"Error receiving stream: HTTP {status_code}")
            self._fail(StreamError.http_status(status_code))
            return

        if self.status == StreamStatus.CONNECTING and 200 <= status_code < 300:
            self._set_state(ConnectionState.streaming())

        if self._demuxer is not None:
            logger.warning(
                f"New part began before previous one completed "
                f"({self._demuxer.received}/{self._demuxer.expected_length} bytes); discarding it"
            )
            self.metrics.parts_discarded += 1
            self._demuxer = None

        framing = PartFraming.from_headers(headers)
        if framing is None:
            return

        self._demuxer = FrameDemuxer(framing.content_length, decoder=self._decoder)
        self._part_headers = headers
        self.metrics.parts_started += 1

    def on_data(self, handle: TransportHandle, chunk: bytes) -> None:
        """Feed a body chunk into the current part."""
        if not self._is_current(handle, "data"):
            return

        self.metrics.bytes_received += len(chunk)
        demuxer = self._demuxer
        if demuxer is None:
            self.metrics.bytes_ignored += len(chunk)
            return

        try:
            part = demuxer.feed(chunk)
        except FramingError as e:
            self.metrics.framing_errors += 1
            logger.error(f"Framing violation, closing stream: {e}")
            self._fail(StreamError.invalid_data(str(e)))
            return
        except ImageDecodeError as e:
            self._demuxer = None
            self._on_decode_failure(e)
            return

        if part is None:
            return

        self._demuxer = None
        self._consecutive_decode_failures = 0

        if self.status != StreamStatus.STREAMING:
            self.metrics.frames_dropped += 1
            logger.debug(f"Dropping completed part while {self.status.value}")
            return

        self._sequence += 1
        frame = Frame(
            sequence=self._sequence,
            timestamp=time.time(),
            image=part.image,
            jpeg=part.data,
            headers=self._part_headers,
        )
        self.metrics.frames_published += 1
        self.image.set(frame)

    def on_complete(
        self,
        handle: TransportHandle,
        error: Optional[BaseException],
    ) -> None:
        """Handle the end of the request, clean or not."""
        if not self._is_current(handle, "complete"):
            return
        if self.status == StreamStatus.IDLE:
            return

        self._handle = None
        self._discard_part()

        if isinstance(error, MultipartError):
            logger.error(f"Uninterpretable stream response: {_describe(error)}")
            self._set_state(ConnectionState.failed(StreamError.invalid_response(_describe(error))))
        elif error is not None:
            logger.error(f"Stream failed: {_describe(error)}")
            self._set_state(ConnectionState.failed(StreamError.transport(_describe(error))))
        else:
            logger.info("Stream closed by server")
            self._set_state(ConnectionState.idle())

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _is_current(self, handle: TransportHandle, event: str) -> bool:
        if handle is not None and handle is self._handle:
            return True
        self.metrics.stale_events += 1
        logger.debug(f"Dropping stale {event} event from {handle!r}")
        return False

    def _on_decode_failure(self, error: ImageDecodeError) -> None:
        self.metrics.decode_failures += 1
        self._consecutive_decode_failures += 1
        count = self._consecutive_decode_failures

        if count >= self.max_decode_failures:
            logger.error(f"{count} consecutive undecodable parts, closing stream: {error}")
            self._fail(StreamError.decode_failed(str(error)))
        else:
            logger.warning(
                f"Discarding undecodable part ({count}/{self.max_decode_failures}): {error}"
            )

    def _fail(self, error: StreamError) -> None:
        handle = self._handle
        self._handle = None
        if handle is not None:
            handle.cancel()
        self._discard_part()
        self._set_state(ConnectionState.failed(error))

    def _discard_part(self) -> None:
        self._demuxer = None
        self._part_headers = {}

    def _set_state(self, new_state: ConnectionState) -> None:
        old_state = self.state.value
        if new_state == old_state:
            return
        if new_state.error is not None:
            logger.info(
                f"Stream state: {old_state.status.value} → {new_state.status.value} "
                f"({new_state.error.kind.value})"
            )
        else:
            logger.info(f"Stream state: {old_state.status.value} → {new_state.status.value}")
        self.state.set(new_state)
