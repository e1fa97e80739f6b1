"""
Frame Demuxer
=============

Resumable accumulator that reassembles one image part from arbitrarily
sized byte chunks, given the part's declared length.

Design Rules:
    - One instance per part; the controller discards it once it completes
      or fails
    - Completion happens ONLY when the buffer length equals the declared
      length exactly
    - Overrun is fatal: there is no delimiter to resynchronize on, so the
      instance refuses all further input
    - Framing violations (FramingError) and decode failures
      (ImageDecodeError) are distinct exceptions
    - No concurrency; called only from the controller's event loop
"""

import logging
from typing import NamedTuple, Optional

import numpy as np

from legocam_stream.stream.image_decoder import ImageDecoder, decode_image


logger = logging.getLogger(__name__)


class FramingError(Exception):
    """Raised when a chunk would push a part past its declared length."""
    pass


class DecodedPart(NamedTuple):
    """Decoded pixels plus the raw bytes they came from."""

    image: np.ndarray
    data: bytes


class FrameDemuxer:
    """
    Byte accumulator for a single length-framed part.

    Attributes:
        expected_length: Declared byte length of the part
        received: Bytes accumulated so far
        complete: Whether the part has been decoded (or failed decoding)
        failed: Whether a framing violation occurred

    Example:
        demuxer = FrameDemuxer(expected_length=5000)
        for chunk in chunks:
            part = demuxer.feed(chunk)
            if part is not None:
                show(part.image)
    """

    def __init__(
        self,
        expected_length: int,
        decoder: ImageDecoder = decode_image,
    ) -> None:
        """
        Initialize demuxer.

        Args:
            expected_length: Declared part length. Must be > 0.
            decoder: Callable turning the complete bytes into an image
        """
        if expected_length <= 0:
            raise ValueError("expected_length must be > 0")

        self._expected_length = expected_length
        self._decoder = decoder
        self._buffer = bytearray()
        self._complete: bool = False
        self._failed: bool = False

    @property
    def expected_length(self) -> int:
        return self._expected_length

    @property
    def received(self) -> int:
        return len(self._buffer)

    @property
    def remaining(self) -> int:
        return self._expected_length - len(self._buffer)

    @property
    def complete(self) -> bool:
        return self._complete

    @property
    def failed(self) -> bool:
        return self._failed

    def feed(self, chunk: bytes) -> Optional[DecodedPart]:
        """
        Append a chunk and decode once the part is whole.

        Args:
            chunk: Next slice of part bytes, possibly empty

        Returns:
            DecodedPart when this chunk completed the part, None otherwise

        Raises:
            FramingError: If the chunk overflows the declared length, or the
                demuxer is already finished
            ImageDecodeError: If the complete part is not a valid image
        """
        if self._failed or self._complete:
            raise FramingError("Demuxer already finished; discard it")

        total = len(self._buffer) + len(chunk)
        if total > self._expected_length:
            self._failed = True
            self._buffer.clear()
            raise FramingError(
                f"Part overflow: {total} bytes received, "
                f"{self._expected_length} declared"
            )

        self._buffer.extend(chunk)

        if total < self._expected_length:
            return None

        # Exactly one decode attempt per part, success or not.
        self._complete = True
        data = bytes(self._buffer)
        return DecodedPart(image=self._decoder(data), data=data)

    def __repr__(self) -> str:
        return (
            f"FrameDemuxer(received={self.received}, "
            f"expected={self._expected_length})"
        )
