from __future__ import annotations

from functools import lru_cache
from typing import Sequence, Tuple

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from src.config import FONT_LIST
from src.face.types import ValidationResult

COLOR_VALID = (0, 200, 0)  # green (BGR)
COLOR_INVALID = (0, 0, 255)  # red (BGR)


@lru_cache(maxsize=32)
def _get_best_font(font_size: int) -> ImageFont.ImageFont:
    """Return the first loadable font from FONT_LIST (cached)."""
    for p in FONT_LIST:
        try:
            return ImageFont.truetype(p, int(font_size))
        except OSError:
            continue
    return ImageFont.load_default()


def measure_text(text: str, font_size: int = 14) -> Tuple[int, int]:
    font = _get_best_font(int(font_size))
    dummy = ImageDraw.Draw(Image.new("RGB", (10, 10)))
    x1, y1, x2, y2 = dummy.textbbox((0, 0), str(text), font=font)
    return int(x2 - x1), int(y2 - y1)


def draw_texts(
    img: np.ndarray,
    items: Sequence[Tuple[str, Tuple[int, int], int, Tuple[int, int, int]]],
) -> None:
    """Draw unicode texts onto a BGR image in-place with one PIL conversion.

    Args:
        img: OpenCV BGR image, modified in-place.
        items: sequence of (text, (x, y), font_size_px, bgr_color)
    """
    if img is None or len(items) == 0:
        return

    pil_img = Image.fromarray(cv2.cvtColor(img, cv2.COLOR_BGR2RGB))
    draw = ImageDraw.Draw(pil_img)
    for text, org, font_size, bgr in items:
        rgb_color = (int(bgr[2]), int(bgr[1]), int(bgr[0]))
        draw.text(tuple(org), str(text), font=_get_best_font(int(font_size)), fill=rgb_color)
    img[:] = cv2.cvtColor(np.array(pil_img), cv2.COLOR_RGB2BGR)


def draw_validation(image: np.ndarray, result: ValidationResult) -> np.ndarray:
    """
    Render validation feedback: the face box (green if valid, red otherwise),
    the detection score above the box and every violation reason top-left.

    Returns an annotated copy; `image` is left untouched.
    """
    out = np.ascontiguousarray(image.copy())
    if out.ndim == 2:
        out = cv2.cvtColor(out, cv2.COLOR_GRAY2BGR)
    color = COLOR_VALID if result.is_valid else COLOR_INVALID

    h = out.shape[0]
    font_size = max(12, int(h * 0.03))
    items = []

    if result.face_box is not None:
        x1, y1, x2, y2 = result.face_box.to_xyxy()
        cv2.rectangle(out, (x1, y1), (x2, y2), color, 2)
        if result.detection_score is not None:
            label = f"score {result.detection_score:.2f}"
            _, text_h = measure_text(label, font_size)
            items.append((label, (x1, max(0, y1 - text_h - 6)), font_size, color))

    y = 6
    for reason in result.errors:
        items.append((reason, (6, y), font_size, COLOR_INVALID))
        y += measure_text(reason, font_size)[1] + 6

    draw_texts(out, items)
    return out
