"""
Captured Sequence
=================

Ordered list of frames captured from the live stream.

The sequence belongs to the consumer, not the stream core: it pulls the
current frame through a snapshot callable and never touches connection
state. Display, reordering and export live elsewhere.
"""

import logging
from typing import Callable, Iterator, List, Optional

from legocam_stream.stream.frame import Frame


logger = logging.getLogger(__name__)


class CapturedSequence:
    """
    Append-only capture list with an optional size cap.

    Attributes:
        max_frames: Oldest frames are dropped beyond this many (0 = unlimited)

    Example:
        sequence = CapturedSequence(controller.snapshot)
        sequence.capture()
        print(len(sequence))
    """

    def __init__(self, snapshot: Callable[[], Optional[Frame]], max_frames: int = 0) -> None:
        if max_frames < 0:
            raise ValueError("max_frames must be >= 0")
        self._snapshot = snapshot
        self.max_frames = max_frames
        self._frames: List[Frame] = []

    @property
    def frames(self) -> List[Frame]:
        return list(self._frames)

    def capture(self) -> Optional[Frame]:
        """
        Append the current frame.

        Returns:
            The captured frame, or None when the stream has no image yet
        """
        frame = self._snapshot()
        if frame is None:
            logger.info("Capture requested but no frame is available")
            return None

        self._frames.append(frame)
        if self.max_frames and len(self._frames) > self.max_frames:
            del self._frames[0]
        logger.info(f"Captured frame {frame.sequence} ({len(self._frames)} in sequence)")
        return frame

    def clear(self) -> int:
        cleared = len(self._frames)
        self._frames.clear()
        return cleared

    def __len__(self) -> int:
        return len(self._frames)

    def __iter__(self) -> Iterator[Frame]:
        return iter(list(self._frames))

    def __getitem__(self, index: int) -> Frame:
        return self._frames[index]
