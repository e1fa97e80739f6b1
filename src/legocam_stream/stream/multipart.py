"""
Multipart Splitter
==================

Incremental parser for multipart/x-mixed-replace response bodies.

Motion-JPEG cameras send one endless response whose body looks like:

    --frame\r\n
    Content-Type: image/jpeg\r\n
    Content-Length: 5000\r\n
    \r\n
    <5000 bytes of JPEG>\r\n
    --frame\r\n
    ...

The splitter turns arbitrarily chunked body bytes into a flat sequence of
events: PartHeaders when a part begins, then PartData slices of its body.
It locates parts by boundary only; it never interprets Content-Length.
Length-based reassembly is the demuxer's job, so a part whose body is
longer than declared reaches the demuxer intact and fails there.

Design Rules:
    - Resumable across any chunk split, including inside the boundary
    - Body bytes are forwarded as soon as they cannot be a boundary prefix
    - Bounded memory: header blocks larger than max_header_bytes fail
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple, Union


logger = logging.getLogger(__name__)


MAX_HEADER_BYTES = 16 * 1024


class MultipartError(Exception):
    """Raised when the body cannot be split into parts."""
    pass


@dataclass(frozen=True, slots=True)
class PartHeaders:
    """A new part began; carries its header lines in order."""

    headers: Tuple[Tuple[str, str], ...]


@dataclass(frozen=True, slots=True)
class PartData:
    """A slice of the current part's body."""

    data: bytes


MultipartEvent = Union[PartHeaders, PartData]


class _Phase(str, Enum):
    PREAMBLE = "PREAMBLE"
    HEADERS = "HEADERS"
    BODY = "BODY"
    EPILOGUE = "EPILOGUE"


def parse_boundary(content_type: Optional[str]) -> Optional[str]:
    """
    Extract the boundary parameter of a multipart content type.

    Returns:
        Boundary string, or None when the content type is not multipart or
        declares no boundary
    """
    if not content_type:
        return None
    media_type, _, params = content_type.partition(";")
    if not media_type.strip().lower().startswith("multipart/"):
        return None
    for param in params.split(";"):
        key, _, value = param.partition("=")
        if key.strip().lower() == "boundary":
            value = value.strip().strip('"')
            return value or None
    return None


def _partial_suffix(buffer: bytearray, token: bytes) -> int:
    """Length of the longest buffer suffix that is a proper prefix of token."""
    for size in range(min(len(buffer), len(token) - 1), 0, -1):
        if buffer.endswith(token[:size]):
            return size
    return 0


def parse_header_block(block: bytes) -> Tuple[Tuple[str, str], ...]:
    """Parse CRLF (or LF) separated 'Name: value' lines; junk lines are skipped."""
    headers: List[Tuple[str, str]] = []
    for raw_line in block.split(b"\n"):
        line = raw_line.rstrip(b"\r")
        if not line:
            continue
        name, sep, value = line.partition(b":")
        if not sep or not name.strip():
            logger.debug(f"Skipping malformed part header line: {line[:64]!r}")
            continue
        headers.append((
            name.strip().decode("latin-1"),
            value.strip().decode("latin-1"),
        ))
    return tuple(headers)


class MultipartSplitter:
    """
    Resumable multipart body splitter.

    Attributes:
        boundary: Boundary declared by the response Content-Type
        parts_started: Number of PartHeaders events emitted

    Example:
        splitter = MultipartSplitter("frame")
        async for chunk in response.aiter_bytes():
            for event in splitter.feed(chunk):
                if isinstance(event, PartHeaders):
                    start_part(event.headers)
                else:
                    append(event.data)
    """

    def __init__(self, boundary: str, max_header_bytes: int = MAX_HEADER_BYTES) -> None:
        if not boundary:
            raise ValueError("boundary must be non-empty")

        self.boundary = boundary
        self.max_header_bytes = max_header_bytes
        self.parts_started: int = 0

        raw = boundary.encode("latin-1")
        # Some servers declare "--frame" and write "----frame", others declare
        # "--frame" and write "--frame". Accept both until the first match.
        self._candidates: List[bytes] = [b"--" + raw]
        if raw.startswith(b"--"):
            self._candidates.append(raw)
        self._delimiter: Optional[bytes] = None

        self._phase = _Phase.PREAMBLE
        self._buffer = bytearray()

    @property
    def finished(self) -> bool:
        """Whether the closing boundary has been seen."""
        return self._phase == _Phase.EPILOGUE

    def feed(self, chunk: bytes) -> List[MultipartEvent]:
        """
        Consume body bytes.

        Args:
            chunk: Next slice of the response body

        Returns:
            Events completed by this chunk, in order

        Raises:
            MultipartError: On an oversized header block
        """
        events: List[MultipartEvent] = []
        if self._phase == _Phase.EPILOGUE:
            return events

        self._buffer.extend(chunk)

        while True:
            if self._phase == _Phase.PREAMBLE:
                if not self._find_first_delimiter():
                    break
            elif self._phase == _Phase.HEADERS:
                if not self._read_headers(events):
                    break
            elif self._phase == _Phase.BODY:
                if not self._read_body(events):
                    break
            else:
                self._buffer.clear()
                break

        return events

    def _find_first_delimiter(self) -> bool:
        best: Optional[Tuple[int, bytes]] = None
        for candidate in self._candidates:
            index = self._buffer.find(candidate)
            if index != -1 and (best is None or index < best[0]):
                best = (index, candidate)

        if best is None:
            # Keep only what could still be the start of a delimiter.
            keep = max(len(c) for c in self._candidates) - 1
            if len(self._buffer) > keep:
                del self._buffer[: len(self._buffer) - keep]
            return False

        index, delimiter = best
        self._delimiter = delimiter
        del self._buffer[: index + len(delimiter)]
        self._phase = _Phase.HEADERS
        return True

    def _read_headers(self, events: List[MultipartEvent]) -> bool:
        # The delimiter line ends with CRLF, or "--" for the closing boundary.
        if len(self._buffer) < 2:
            return False
        if self._buffer[:2] == b"--":
            logger.info("Multipart stream closed by final boundary")
            self._phase = _Phase.EPILOGUE
            self._buffer.clear()
            return False

        end = self._buffer.find(b"\r\n\r\n")
        sep_len = 4
        lf_end = self._buffer.find(b"\n\n")
        if lf_end != -1 and (end == -1 or lf_end < end):
            end, sep_len = lf_end, 2

        if end == -1:
            if len(self._buffer) > self.max_header_bytes:
                raise MultipartError(
                    f"Part header block exceeds {self.max_header_bytes} bytes"
                )
            return False

        headers = parse_header_block(bytes(self._buffer[:end]))
        del self._buffer[: end + sep_len]
        self.parts_started += 1
        events.append(PartHeaders(headers=headers))
        self._phase = _Phase.BODY
        return True

    def _read_body(self, events: List[MultipartEvent]) -> bool:
        assert self._delimiter is not None
        terminator = b"\r\n" + self._delimiter
        index = self._buffer.find(terminator)

        if index == -1:
            # Everything except a possible partial terminator is body.
            safe = len(self._buffer) - _partial_suffix(self._buffer, terminator)
            if safe > 0:
                events.append(PartData(data=bytes(self._buffer[:safe])))
                del self._buffer[:safe]
            return False

        if index > 0:
            events.append(PartData(data=bytes(self._buffer[:index])))
        del self._buffer[: index + len(terminator)]
        self._phase = _Phase.HEADERS
        return True
