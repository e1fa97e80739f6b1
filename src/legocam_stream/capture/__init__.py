"""
Capture Module
==============

Consumers of the stream core that turn live frames into a captured sequence.

Components:
    - CapturedSequence: Ordered list of frames pulled via snapshot()
    - HeaderSignalWatcher: Debounced header signal that triggers captures
"""

from legocam_stream.capture.sequence import CapturedSequence
from legocam_stream.capture.trigger import HeaderSignalWatcher

__all__ = [
    "CapturedSequence",
    "HeaderSignalWatcher",
]
