"""
Image Decoder
=============

Dedicated module for decoding reassembled JPEG parts into OpenCV matrices.

Design Rules:
    - This is the ONLY place in the codebase that decodes images
    - Validates shape and dtype
    - Fails fast on corrupt parts
    - Returns BGR (OpenCV's native channel order)
"""

import logging
from typing import Callable

import cv2
import numpy as np


logger = logging.getLogger(__name__)


ImageDecoder = Callable[[bytes], np.ndarray]


class ImageDecodeError(Exception):
    """Raised when correctly sized bytes are not a valid image."""
    pass


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode an encoded image (JPEG in practice) to a BGR numpy array.

    Args:
        data: Complete encoded image bytes

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8

    Raises:
        ImageDecodeError: If decoding fails or image is invalid
    """
    if not data:
        raise ImageDecodeError("Cannot decode an empty part")

    try:
        nparr = np.frombuffer(data, np.uint8)
        bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"cv2.imdecode failed on {len(data)} bytes: {e}") from e

    if bgr is None:
        raise ImageDecodeError(
            f"Failed to decode {len(data)} bytes: cv2.imdecode returned None"
        )

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape: {bgr.shape}")

    if bgr.dtype != np.uint8:
        raise ImageDecodeError(f"Invalid dtype: {bgr.dtype}")

    return bgr


def encode_jpeg(image: np.ndarray, quality: int = 90) -> bytes:
    """
    Encode a BGR image as JPEG.

    Used to serve snapshots of frames whose raw bytes are unavailable.

    Raises:
        ImageDecodeError: If OpenCV refuses to encode the image
    """
    ok, buf = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ImageDecodeError(f"cv2.imencode failed for shape {image.shape}")
    return buf.tobytes()
