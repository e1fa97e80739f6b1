"""
LegoCamStream Main Application
==============================

FastAPI entry point for the motion-JPEG stream service.

The service owns one StreamController, one CapturedSequence and, when
enabled, a HeaderSignalWatcher that captures a frame whenever the camera
raises its button header.

Endpoints:
    GET  /              - Service information
    GET  /health        - Liveness probe (is process alive?)
    GET  /ready         - Readiness probe (is the stream delivering frames?)
    GET  /state         - Connection state, latest headers, current frame info
    GET  /metrics       - Stream counters
    GET  /snapshot      - Current frame as image/jpeg
    POST /stream/start  - Start streaming (optional url, else configured url)
    POST /stream/stop   - Stop streaming
    GET  /captures      - Captured sequence summary
    POST /captures      - Capture the current frame
    WS   /ws/state      - Real-time connection state
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from legocam_stream.config import settings
from legocam_stream.capture import CapturedSequence, HeaderSignalWatcher
from legocam_stream.models.state import StreamStatus
from legocam_stream.stream import Frame, HttpxTransport, StreamController


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_controller: Optional[StreamController] = None
_sequence: Optional[CapturedSequence] = None
_watcher: Optional[HeaderSignalWatcher] = None
_watcher_task: Optional[asyncio.Task] = None
_startup_time: float = 0.0


# =============================================================================
# Getters
# =============================================================================

def get_controller() -> Optional[StreamController]:
    return _controller

def get_sequence() -> Optional[CapturedSequence]:
    return _sequence

def get_watcher() -> Optional[HeaderSignalWatcher]:
    return _watcher


# =============================================================================
# Factories
# =============================================================================

def create_controller() -> StreamController:
    """Create the stream controller from config."""
    transport = HttpxTransport()
    logger.info(
        f"Creating StreamController: "
        f"connect_timeout={settings.stream.connect_timeout_seconds}s, "
        f"max_decode_failures={settings.stream.max_decode_failures}"
    )
    return StreamController(
        transport=transport,
        connect_timeout=settings.stream.connect_timeout_seconds,
        max_decode_failures=settings.stream.max_decode_failures,
    )


def _frame_summary(frame: Optional[Frame]) -> Optional[dict]:
    if frame is None:
        return None
    return {
        "sequence": frame.sequence,
        "timestamp": frame.timestamp,
        "width": frame.width,
        "height": frame.height,
        "bytes": len(frame.jpeg),
    }


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _controller, _sequence, _watcher, _watcher_task, _startup_time

    # Startup
    _startup_time = time.time()
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    _controller = create_controller()
    _sequence = CapturedSequence(
        _controller.snapshot,
        max_frames=settings.capture.max_frames,
    )

    if settings.capture.enabled:
        _watcher = HeaderSignalWatcher(
            on_trigger=_sequence.capture,
            header=settings.capture.signal_header,
            value=settings.capture.signal_value,
            debounce_seconds=settings.capture.debounce_seconds,
        )
        _watcher_task = asyncio.create_task(
            _watcher.run(_controller.headers),
            name="header_signal_watcher",
        )

    if settings.stream.autostart:
        logger.info(f"Autostarting stream: {settings.stream.url}")
        _controller.start(settings.stream.url)

    yield

    # Shutdown
    logger.info("Shutting down gracefully...")

    if _watcher:
        _watcher.stop()

    if _watcher_task:
        _watcher_task.cancel()
        try:
            await _watcher_task
        except asyncio.CancelledError:
            pass

    if _controller:
        _controller.close()

    _controller = None
    _sequence = None
    _watcher = None
    _watcher_task = None

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="LegoCamStream",
    description="Motion-JPEG stream client with frame capture",
    version=settings.service.version,
    lifespan=lifespan,
)


class StartRequest(BaseModel):
    """Body of POST /stream/start."""

    url: Optional[str] = Field(
        default=None,
        description="Stream URL; the configured url is used when omitted",
    )


def _not_running() -> JSONResponse:
    return JSONResponse({"error": "Service not initialized"}, status_code=503)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "LegoCamStream",
        "version": settings.service.version,
        "name": settings.service.name,
        "status": "running",
        "stream_url": settings.stream.url,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - is the stream delivering frames?

    Returns 200 while STREAMING, 503 otherwise.
    """
    controller = get_controller()
    status = controller.status if controller else None

    if status == StreamStatus.STREAMING:
        return JSONResponse({"status": "ready", "stream": status.value})
    return JSONResponse(
        {"status": "not_ready", "stream": status.value if status else None},
        status_code=503,
    )


@app.get("/state")
async def state() -> JSONResponse:
    """Connection state, latest headers, current frame and counters."""
    controller = get_controller()
    if controller is None:
        return _not_running()

    headers = controller.last_headers
    sequence = get_sequence()
    return JSONResponse({
        **controller.state.value.to_dict(),
        "headers": dict(headers.items()) if headers is not None else None,
        "frame": _frame_summary(controller.current_image),
        "captured": len(sequence) if sequence is not None else 0,
        "metrics": controller.metrics.to_dict(),
    })


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    controller = get_controller()
    if controller is None:
        return _not_running()

    watcher = get_watcher()
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "status": controller.status.value,
        "capture_triggers": watcher.trigger_count if watcher else 0,
        **controller.metrics.to_dict(),
    })


@app.get("/snapshot")
async def snapshot() -> Response:
    """Current frame as JPEG."""
    controller = get_controller()
    if controller is None:
        return _not_running()

    frame = controller.snapshot()
    if frame is None:
        return JSONResponse({"error": "No frame available yet"}, status_code=503)

    return Response(
        content=frame.jpeg,
        media_type="image/jpeg",
        headers={"X-Frame-Sequence": str(frame.sequence)},
    )


@app.post("/stream/start")
async def start_stream(request: Optional[StartRequest] = None) -> JSONResponse:
    """Start streaming; a no-op while already connecting or streaming."""
    controller = get_controller()
    if controller is None:
        return _not_running()

    url = request.url if request and request.url else settings.stream.url
    controller.start(url)
    return JSONResponse(controller.state.value.to_dict())


@app.post("/stream/stop")
async def stop_stream() -> JSONResponse:
    """Stop streaming. Idempotent."""
    controller = get_controller()
    if controller is None:
        return _not_running()

    controller.stop()
    return JSONResponse(controller.state.value.to_dict())


@app.get("/captures")
async def list_captures() -> JSONResponse:
    """Captured sequence summary."""
    sequence = get_sequence()
    if sequence is None:
        return _not_running()

    return JSONResponse({
        "count": len(sequence),
        "frames": [_frame_summary(frame) for frame in sequence],
    })


@app.post("/captures")
async def capture() -> JSONResponse:
    """Capture the current frame into the sequence."""
    sequence = get_sequence()
    if sequence is None:
        return _not_running()

    frame = sequence.capture()
    if frame is None:
        return JSONResponse({"error": "No frame available yet"}, status_code=409)
    return JSONResponse(_frame_summary(frame), status_code=201)


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/state")
async def state_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint for real-time connection state."""
    await websocket.accept()
    logger.info("Client connected to /ws/state")

    controller = get_controller()
    if controller is None:
        await websocket.close(code=1011)
        return

    subscription = controller.state.subscribe()
    try:
        async for current in subscription:
            await websocket.send_json(current.to_dict())
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        subscription.cancel()
        logger.info("Client disconnected from /ws/state")


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Console entry point."""
    import uvicorn

    # Cloud Run uses PORT env var
    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "legocam_stream.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
