"""
Test Configuration
==================

Pytest fixtures and test configuration for LegoCamStream.
"""

from typing import List, Optional, Sequence

import httpx
import numpy as np
import pytest

from legocam_stream.stream.controller import StreamController
from legocam_stream.stream.image_decoder import ImageDecodeError, encode_jpeg
from legocam_stream.stream.transport import TransportHandle


def make_jpeg(width: int = 32, height: int = 24, color=(0, 128, 255)) -> bytes:
    """Encode a solid-color test image."""
    image = np.full((height, width, 3), color, dtype=np.uint8)
    return encode_jpeg(image)


def image_headers(length: int, content_type: str = "image/jpeg") -> dict:
    return {"Content-Type": content_type, "Content-Length": str(length)}


def multipart_body(
    parts: Sequence[bytes],
    boundary: bytes = b"frame",
    close: bool = True,
    extra_headers: bytes = b"",
) -> bytes:
    """Build a multipart/x-mixed-replace body from part payloads."""
    body = b""
    for data in parts:
        body += (
            b"--" + boundary + b"\r\n"
            b"Content-Type: image/jpeg\r\n"
            + extra_headers
            + b"Content-Length: " + str(len(data)).encode() + b"\r\n"
            b"\r\n"
            + data + b"\r\n"
        )
    if close:
        body += b"--" + boundary + b"--\r\n"
    return body


class FakeTransport:
    """Transport that records opened handles and never does I/O."""

    def __init__(self) -> None:
        self.opened: List[TransportHandle] = []
        self.timeouts: List[float] = []

    def open(self, url: httpx.URL, sink, connect_timeout: float) -> TransportHandle:
        handle = TransportHandle(url)
        self.opened.append(handle)
        self.timeouts.append(connect_timeout)
        return handle

    @property
    def last(self) -> Optional[TransportHandle]:
        return self.opened[-1] if self.opened else None


class CountingDecoder:
    """Decoder stub that records every decode attempt."""

    def __init__(self, fail: bool = False) -> None:
        self.calls: List[bytes] = []
        self.fail = fail

    def __call__(self, data: bytes) -> np.ndarray:
        self.calls.append(data)
        if self.fail:
            raise ImageDecodeError("not an image")
        return np.zeros((2, 2, 3), dtype=np.uint8)


@pytest.fixture
def jpeg_bytes() -> bytes:
    """Provide a small valid JPEG."""
    return make_jpeg()


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def decoder() -> CountingDecoder:
    return CountingDecoder()


@pytest.fixture
def controller(transport, decoder) -> StreamController:
    """Controller wired to the fake transport and counting decoder."""
    return StreamController(transport=transport, decoder=decoder)


@pytest.fixture
def streaming(controller, transport):
    """Controller already STREAMING; returns (controller, handle)."""
    controller.start("http://camera.local/stream")
    handle = transport.last
    controller.on_response(handle, 200, {"Content-Type": "multipart/x-mixed-replace; boundary=frame"})
    return controller, handle
