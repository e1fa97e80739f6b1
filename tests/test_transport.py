"""
Transport Integration Tests
===========================

StreamController driven end-to-end by HttpxTransport over httpx.MockTransport.
"""

import asyncio

import httpx
import pytest

from legocam_stream.models.errors import ErrorKind
from legocam_stream.models.state import StreamStatus
from legocam_stream.stream.controller import StreamController
from legocam_stream.stream.transport import HttpxTransport

from conftest import make_jpeg, multipart_body


URL = "http://camera.local/stream"
MULTIPART = {"Content-Type": "multipart/x-mixed-replace; boundary=frame"}


class RecordingTransport(HttpxTransport):
    """HttpxTransport over a mock handler that remembers its last handle."""

    def __init__(self, handler) -> None:
        def factory(timeout: httpx.Timeout) -> httpx.AsyncClient:
            self.timeout = timeout
            return httpx.AsyncClient(transport=httpx.MockTransport(handler), timeout=timeout)

        super().__init__(client_factory=factory)
        self.handle = None
        self.timeout = None

    def open(self, url, sink, connect_timeout=5.0):
        self.handle = super().open(url, sink, connect_timeout)
        return self.handle


async def run_to_completion(controller, transport, address=URL):
    controller.start(address)
    assert controller.status == StreamStatus.CONNECTING
    await asyncio.wait_for(transport.handle.wait(), timeout=5.0)


class TestMultipartStream:
    """Tests for multipart/x-mixed-replace responses."""

    async def test_frames_are_published_then_clean_close(self):
        """Every part becomes a frame, then the close returns to IDLE."""
        first, second = make_jpeg(color=(255, 0, 0)), make_jpeg(width=48, color=(0, 255, 0))
        body = multipart_body([first, second])

        transport = RecordingTransport(lambda request: httpx.Response(200, headers=MULTIPART, content=body))
        controller = StreamController(transport=transport)
        statuses = controller.state.subscribe(replay=False)

        await run_to_completion(controller, transport)

        assert controller.metrics.frames_published == 2
        assert controller.current_image.jpeg == second
        assert controller.current_image.width == 48
        assert controller.status == StreamStatus.IDLE
        assert transport.timeout.connect == 5.0
        assert transport.timeout.read is None

        seen = []
        while (state := await statuses.get(timeout=0.01)) is not None:
            seen.append(state.status)
        # Single-slot subscription: only the latest value is guaranteed.
        assert seen[-1] == StreamStatus.IDLE

    async def test_small_frames_arrive_before_the_body_pauses(self):
        """Frames are published without waiting for more bytes to build up."""
        first, second = make_jpeg(color=(255, 0, 0)), make_jpeg(color=(0, 0, 255))
        paused = asyncio.Event()

        async def body():
            yield multipart_body([first], close=False)
            yield multipart_body([second], close=False)
            await paused.wait()

        transport = RecordingTransport(
            lambda request: httpx.Response(200, headers=MULTIPART, content=body())
        )
        controller = StreamController(transport=transport)
        frames = controller.image.subscribe(replay=False)

        controller.start(URL)
        for _ in range(10):
            await frames.get(timeout=1.0)
            if controller.metrics.frames_published == 2:
                break

        assert controller.metrics.frames_published == 2
        assert controller.current_image.jpeg == second
        assert controller.status == StreamStatus.STREAMING

        controller.stop()
        await asyncio.wait_for(transport.handle.wait(), timeout=5.0)

    async def test_part_headers_are_published(self):
        """Part headers reach the published headers and the frame."""
        jpeg = make_jpeg()
        body = multipart_body([jpeg], extra_headers=b"X-Button-Pressed: 1\r\n")

        transport = RecordingTransport(lambda request: httpx.Response(200, headers=MULTIPART, content=body))
        controller = StreamController(transport=transport)

        await run_to_completion(controller, transport)

        assert controller.last_headers["X-Button-Pressed"] == "1"
        assert controller.current_image.headers["content-length"] == str(len(jpeg))

    async def test_overlong_part_is_framing_violation(self):
        """A part longer than declared fails with INVALID_DATA."""
        jpeg = make_jpeg()
        body = (
            b"--frame\r\nContent-Type: image/jpeg\r\nContent-Length: 100\r\n\r\n"
            + jpeg + b"\r\n--frame--\r\n"
        )
        transport = RecordingTransport(lambda request: httpx.Response(200, headers=MULTIPART, content=body))
        controller = StreamController(transport=transport)

        await run_to_completion(controller, transport)

        assert controller.status == StreamStatus.ERROR
        assert controller.error.kind == ErrorKind.INVALID_DATA
        assert controller.current_image is None

    async def test_multipart_without_boundary(self):
        """A multipart response with no boundary fails with INVALID_RESPONSE."""
        transport = RecordingTransport(
            lambda request: httpx.Response(
                200, headers={"Content-Type": "multipart/x-mixed-replace"}, content=b"x"
            )
        )
        controller = StreamController(transport=transport)

        await run_to_completion(controller, transport)

        assert controller.status == StreamStatus.ERROR
        assert controller.error.kind == ErrorKind.INVALID_RESPONSE


class TestSingleImage:
    """Tests for single-image responses."""

    async def test_plain_jpeg_response(self):
        """A single image body arriving in small pieces becomes one frame."""
        jpeg = make_jpeg()

        async def trickle():
            for offset in range(0, len(jpeg), 7):
                yield jpeg[offset:offset + 7]

        transport = RecordingTransport(
            lambda request: httpx.Response(
                200,
                headers={"Content-Type": "image/jpeg", "Content-Length": str(len(jpeg))},
                content=trickle(),
            )
        )
        controller = StreamController(transport=transport)

        await run_to_completion(controller, transport)

        assert controller.current_image.jpeg == jpeg
        assert controller.status == StreamStatus.IDLE


class TestFailures:
    """Tests for failed requests."""

    async def test_http_404(self):
        """A 404 response fails the stream and cancels the request."""
        transport = RecordingTransport(lambda request: httpx.Response(404, content=b"not found"))
        controller = StreamController(transport=transport)

        await run_to_completion(controller, transport)

        assert controller.status == StreamStatus.ERROR
        assert controller.error.kind == ErrorKind.HTTP_STATUS
        assert controller.error.status_code == 404
        assert transport.handle.cancelled

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("connection refused"),
            httpx.ConnectTimeout("timed out"),
        ],
    )
    async def test_connect_failures(self, exc):
        """Connect errors and timeouts fail with TRANSPORT."""
        def handler(request):
            raise exc

        transport = RecordingTransport(handler)
        controller = StreamController(transport=transport)

        await run_to_completion(controller, transport)

        assert controller.status == StreamStatus.ERROR
        assert controller.error.kind == ErrorKind.TRANSPORT
        assert str(exc) in controller.error.detail


class TestStopMidStream:
    """Tests for stopping an open stream."""

    async def test_stop_cancels_open_stream(self):
        """stop() ends an open stream and later events are stale."""
        jpeg = make_jpeg()
        never = asyncio.Event()

        async def endless_body():
            yield multipart_body([jpeg], close=False)
            await never.wait()

        transport = RecordingTransport(
            lambda request: httpx.Response(200, headers=MULTIPART, content=endless_body())
        )
        controller = StreamController(transport=transport)
        frames = controller.image.subscribe(replay=False)

        controller.start(URL)
        frame = await frames.get(timeout=5.0)
        assert frame is not None
        assert controller.status == StreamStatus.STREAMING

        controller.stop()
        assert controller.status == StreamStatus.IDLE
        assert controller.current_image is None

        await asyncio.wait_for(transport.handle.wait(), timeout=5.0)
        assert transport.handle.task.done()
        assert controller.status == StreamStatus.IDLE
        assert controller.metrics.stale_events >= 1
