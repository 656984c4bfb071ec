from __future__ import annotations

import base64
import binascii
import re

from pathlib import Path
from typing import Union

import cv2
import numpy as np

from src.face.errors import DecodeFailure

_DATA_URL_RE = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+)?;base64,", re.IGNORECASE)


def strip_data_url(data: str) -> str:
    """Drop a `data:image/...;base64,` prefix if present."""
    return _DATA_URL_RE.sub("", data.strip(), count=1)


def decode_base64(data: str) -> bytes:
    try:
        return base64.b64decode(strip_data_url(data), validate=False)
    except (binascii.Error, ValueError) as e:
        raise DecodeFailure(f"Invalid base64 image: {e}") from e


def decode_image(data: Union[bytes, bytearray, memoryview, str]) -> np.ndarray:
    """Decode an encoded image (raw bytes, base64 or data URL) into a BGR array."""
    if isinstance(data, str):
        data = decode_base64(data)
    buf = np.frombuffer(bytes(data), dtype=np.uint8)
    if buf.size == 0:
        raise DecodeFailure("Empty image buffer")
    image = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if image is None:
        raise DecodeFailure("Unsupported or corrupt image data")
    return image


def read_image(path: Union[str, Path]) -> np.ndarray:
    image = cv2.imread(str(path))
    if image is None:
        raise DecodeFailure(f"Cannot read image: {path}")
    return image
