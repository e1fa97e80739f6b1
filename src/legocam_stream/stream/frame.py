"""
Frame Data Model
=================

Completed-image representation published by the stream controller.

Design Rules:
    - This is the ONLY frame format handed to observers and collaborators
    - Holds both the decoded pixels and the raw JPEG bytes
    - Immutable; the controller replaces frames, it never edits them
"""

from dataclasses import dataclass, field
from typing import Mapping

import numpy as np


@dataclass(frozen=True, slots=True)
class Frame:
    """
    One fully reassembled and decoded image.

    Attributes:
        sequence: Per-controller counter of published frames
        timestamp: UNIX timestamp when the part completed
        image: Decoded BGR image, shape (H, W, 3), dtype uint8
        jpeg: Raw part bytes exactly as received
        headers: Header mapping of the part the frame arrived in
    """

    sequence: int
    timestamp: float
    image: np.ndarray = field(compare=False)
    jpeg: bytes = field(compare=False)
    headers: Mapping[str, str] = field(default_factory=dict, compare=False)

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"Frame(sequence={self.sequence}, "
            f"timestamp={self.timestamp:.3f}, "
            f"size={self.width}x{self.height}, "
            f"bytes={len(self.jpeg)})"
        )
