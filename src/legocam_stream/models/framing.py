"""
Part Framing Schema
===================

This module defines the typed framing information parsed from the header
mapping of one response part.

A part carries an image only when both framing headers are usable:
    Content-Type:   image/jpeg           (any image/* media type)
    Content-Length: 5000                 (positive integer)

Headers are loosely typed on the wire. They are parsed eagerly into a
PartFraming when the header event is handled; anything that does not
validate means "no framing for this part" and never raises.

Example:
    from legocam_stream.models.framing import PartFraming

    framing = PartFraming.from_headers({
        "Content-Type": "image/jpeg",
        "Content-Length": "5000",
    })
    assert framing is not None and framing.content_length == 5000
"""

import logging
from typing import Mapping, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError, field_validator


logger = logging.getLogger(__name__)


class PartFraming(BaseModel):
    """
    Framing of one image part.

    Attributes:
        media_type: Lower-cased media type without parameters (e.g. image/jpeg)
        content_length: Declared byte length of the part body
    """

    media_type: str = Field(
        ...,
        description="Media type of the part, parameters stripped",
    )

    content_length: int = Field(
        ...,
        gt=0,
        description="Declared body length in bytes",
    )

    model_config = {"frozen": True}

    @field_validator("media_type")
    @classmethod
    def _must_be_image(cls, value: str) -> str:
        value = value.split(";", 1)[0].strip().lower()
        if not value.startswith("image/"):
            raise ValueError(f"not an image media type: {value!r}")
        return value

    @field_validator("content_length", mode="before")
    @classmethod
    def _strict_integer(cls, value: object) -> object:
        # Reject "12.5", " 1e3" and friends that lax int parsing would accept.
        if isinstance(value, str):
            value = value.strip()
            if not value.isdigit():
                raise ValueError(f"not an integer: {value!r}")
        return value

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Optional["PartFraming"]:
        """
        Parse framing from a header mapping.

        Args:
            headers: Part (or response) headers

        Returns:
            PartFraming, or None when the part does not declare an image
            with a usable length
        """
        headers = httpx.Headers(headers)
        content_type = headers.get("Content-Type")
        content_length = headers.get("Content-Length")
        if content_type is None or content_length is None:
            return None

        try:
            return cls(media_type=content_type, content_length=content_length)
        except ValidationError as e:
            logger.debug(f"No framing for part: {e.error_count()} invalid field(s)")
            return None
