"""
Stream Transport
================

HTTP boundary of the stream controller.

This module provides:
    - TransportSink: the three events a transport delivers
    - TransportHandle: a cancellable in-flight request
    - HttpxTransport: async GET via httpx, with multipart splitting

Event contract (per handle, in arrival order):
    on_response(handle, status_code, headers)   once per part
    on_data(handle, chunk)                      zero or more per part
    on_complete(handle, error)                  at most once, last

For a multipart/x-mixed-replace body the first on_response carries the
outer response headers, and each part then gets its own on_response with
the outer status code and the part headers. Any other body is delivered as
the response's own part.

Design Rules:
    - Every event carries the handle it came from; the sink decides
      whether it is stale
    - Events are delivered on the event loop that opened the handle
    - Only the connect phase is time-bounded; reads may wait forever
    - Cancelling a running request still produces on_complete (with
      TransportCancelled); a handle cancelled before its task ever ran
      reports nothing
"""

import asyncio
import itertools
import logging
from typing import Callable, Mapping, Optional, Protocol

import httpx

from legocam_stream.stream.multipart import (
    MultipartError,
    MultipartSplitter,
    PartHeaders,
    parse_boundary,
)


logger = logging.getLogger(__name__)


DEFAULT_CONNECT_TIMEOUT = 5.0

_handle_ids = itertools.count(1)


class TransportCancelled(Exception):
    """Reported through on_complete when a handle was cancelled."""
    pass


class TransportSink(Protocol):
    """Receiver of transport events."""

    def on_response(
        self,
        handle: "TransportHandle",
        status_code: int,
        headers: Mapping[str, str],
    ) -> None: ...

    def on_data(self, handle: "TransportHandle", chunk: bytes) -> None: ...

    def on_complete(
        self,
        handle: "TransportHandle",
        error: Optional[BaseException],
    ) -> None: ...


class TransportHandle:
    """
    One in-flight request.

    Subclasses start the I/O; the base class only tracks identity and
    cancellation so that fakes and real transports behave the same way.

    Attributes:
        id: Process-unique handle number
        url: Requested URL
        cancelled: Whether cancel() was called
    """

    def __init__(self, url: httpx.URL) -> None:
        self.id: int = next(_handle_ids)
        self.url = url
        self._cancelled: bool = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Cancel the request. Idempotent."""
        self._cancelled = True

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id}, url={str(self.url)!r})"


class Transport(Protocol):
    """Factory of transport handles."""

    def open(
        self,
        url: httpx.URL,
        sink: TransportSink,
        connect_timeout: float,
    ) -> TransportHandle: ...


ClientFactory = Callable[[httpx.Timeout], httpx.AsyncClient]


def default_client_factory(timeout: httpx.Timeout) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True)


class HttpxHandle(TransportHandle):
    """
    Request running as an asyncio task.

    The task is created on the running loop when the handle is built, so
    open() must be called from inside that loop.
    """

    def __init__(
        self,
        url: httpx.URL,
        sink: TransportSink,
        connect_timeout: float,
        client_factory: ClientFactory,
    ) -> None:
        super().__init__(url)
        self._sink = sink
        self._timeout = httpx.Timeout(None, connect=connect_timeout)
        self._client_factory = client_factory
        self.bytes_received: int = 0
        self._task: asyncio.Task = asyncio.get_running_loop().create_task(
            self._run(),
            name=f"mjpeg_transport_{self.id}",
        )

    @property
    def task(self) -> asyncio.Task:
        return self._task

    def cancel(self) -> None:
        if self._cancelled:
            return
        super().cancel()
        self._task.cancel()

    async def wait(self) -> None:
        """Wait until the request has fully wound down."""
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        error: Optional[BaseException] = None
        try:
            async with self._client_factory(self._timeout) as client:
                async with client.stream("GET", self.url) as response:
                    await self._consume(response)
        except asyncio.CancelledError:
            error = TransportCancelled(f"Request {self.id} cancelled")
            raise
        except httpx.TimeoutException as e:
            error = e
            logger.warning(f"Timed out connecting to {self.url}: {e!r}")
        except (httpx.HTTPError, MultipartError) as e:
            error = e
            logger.warning(f"Transport error on {self.url}: {e!r}")
        except Exception as e:
            error = e
            logger.exception(f"Unexpected error reading {self.url}")
        finally:
            self._sink.on_complete(self, error)

    async def _consume(self, response: httpx.Response) -> None:
        status = response.status_code
        self._sink.on_response(self, status, response.headers)

        if status >= 400 or self._cancelled:
            return

        boundary = parse_boundary(response.headers.get("content-type"))
        splitter: Optional[MultipartSplitter] = None
        if boundary:
            splitter = MultipartSplitter(boundary)
        elif response.headers.get("content-type", "").lower().startswith("multipart/"):
            raise MultipartError("Multipart response without a boundary parameter")

        # Unsized: every chunk is forwarded as soon as it is read.
        async for chunk in response.aiter_bytes():
            if self._cancelled:
                return
            self.bytes_received += len(chunk)
            if splitter is None:
                self._sink.on_data(self, chunk)
                continue
            for event in splitter.feed(chunk):
                if isinstance(event, PartHeaders):
                    self._sink.on_response(
                        self, status, httpx.Headers(list(event.headers), encoding="latin-1")
                    )
                else:
                    self._sink.on_data(self, event.data)
                if self._cancelled:
                    return


class HttpxTransport:
    """
    Transport issuing GET requests with httpx.

    Example:
        transport = HttpxTransport()
        handle = transport.open(httpx.URL("http://cam.local/stream"), sink, 5.0)
        ...
        handle.cancel()
    """

    def __init__(
        self,
        client_factory: ClientFactory = default_client_factory,
    ) -> None:
        self._client_factory = client_factory

    def open(
        self,
        url: httpx.URL,
        sink: TransportSink,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> HttpxHandle:
        logger.info(f"Opening stream request to {url}")
        return HttpxHandle(
            url=url,
            sink=sink,
            connect_timeout=connect_timeout,
            client_factory=self._client_factory,
        )
