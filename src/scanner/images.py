"""
CardScan — Image Helpers

Browsers upload card photos as data URLs ("data:image/png;base64,...");
the vision API wants the bare base64 payload plus its media type.
"""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Any

from src.config import ImageMediaType

_SUFFIX_MEDIA_TYPES: dict[str, ImageMediaType] = {
    ".png": ImageMediaType.PNG,
    ".jpg": ImageMediaType.JPEG,
    ".jpeg": ImageMediaType.JPEG,
    ".webp": ImageMediaType.WEBP,
}


def get_media_type(data: str) -> str:
    """Media type declared by a data URL prefix; JPEG when there is none."""
    if "data:image/png" in data:
        return ImageMediaType.PNG.value
    if "data:image/jpeg" in data:
        return ImageMediaType.JPEG.value
    if "data:image/webp" in data:
        return ImageMediaType.WEBP.value
    return ImageMediaType.JPEG.value


def clean_base64(data: str) -> str:
    """Drop a data URL prefix, leaving the raw base64 payload."""
    if "base64," in data:
        return data.split("base64,", 1)[1]
    return data


def build_image_block(data: str) -> dict[str, Any]:
    """Anthropic Messages API image content block for one photo."""
    return {
        "type": "image",
        "source": {
            "type": "base64",
            "media_type": get_media_type(data),
            "data": clean_base64(data),
        },
    }


def encode_image_file(path: str | Path) -> str:
    """
    Read an image from disk as a data URL.

    Raises:
        ValueError: If the suffix is not png/jpg/jpeg/webp.
    """
    path = Path(path)
    media_type = _SUFFIX_MEDIA_TYPES.get(path.suffix.lower())
    if media_type is None:
        raise ValueError(f"Unsupported image type: {path.suffix or path.name}")

    payload = base64.standard_b64encode(path.read_bytes()).decode("utf-8")
    return f"data:{media_type.value};base64,{payload}"
