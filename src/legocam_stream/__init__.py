"""
LegoCamStream
=============

Motion-JPEG stream client for push-button IP cameras.

This package reconstructs JPEG frames from a continuous HTTP response body
("motion JPEG"), tracks connection health as a small state machine, and
lets collaborators capture the current frame on demand or when the camera
signals a button press through a response header.

Components:
    - stream: StreamController, FrameDemuxer, httpx transport, publication
    - capture: Captured sequence and header-signal trigger
    - models: Connection state, error taxonomy, part framing
    - main: FastAPI service exposing the controller

Example:
    from legocam_stream.stream import StreamController

    controller = StreamController()
    controller.start("http://192.168.4.1/stream")
    ...
    frame = controller.snapshot()
"""

__version__ = "0.1.0"
__author__ = "LegoCam Project"

__all__ = [
    "__version__",
]
