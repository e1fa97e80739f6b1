"""
Stream Module
=============

Motion-JPEG stream consumption and frame reassembly components.

This module provides the ingestion core of LegoCamStream:
    - StreamController: Single-connection client with a published state machine
    - FrameDemuxer: Length-framed part accumulator (one image per part)
    - HttpxTransport: httpx-based request with multipart splitting
    - Published: Latest-value publication for observers
    - Frame: Typed completed-image model

Example:
    from legocam_stream.stream import StreamController

    controller = StreamController(connect_timeout=5.0)
    controller.start("http://192.168.4.1/stream")

    # Observe state changes
    async for state in controller.state.subscribe():
        print(state.status)

    # Pull the current image on demand
    frame = controller.snapshot()

    controller.stop()
"""

from legocam_stream.stream.frame import Frame
from legocam_stream.stream.publisher import Published, Subscription
from legocam_stream.stream.image_decoder import ImageDecodeError, decode_image
from legocam_stream.stream.demuxer import DecodedPart, FrameDemuxer, FramingError
from legocam_stream.stream.multipart import MultipartError, MultipartSplitter
from legocam_stream.stream.transport import (
    HttpxTransport,
    Transport,
    TransportCancelled,
    TransportHandle,
    TransportSink,
)
from legocam_stream.stream.controller import StreamController, StreamMetrics, parse_stream_url


__all__ = [
    "Frame",
    "Published",
    "Subscription",
    "ImageDecodeError",
    "decode_image",
    "DecodedPart",
    "FrameDemuxer",
    "FramingError",
    "MultipartError",
    "MultipartSplitter",
    "HttpxTransport",
    "Transport",
    "TransportCancelled",
    "TransportHandle",
    "TransportSink",
    "StreamController",
    "StreamMetrics",
    "parse_stream_url",
]
