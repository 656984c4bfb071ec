"""Enrollment quality gate.

Runs detection once and evaluates a fixed battery of heuristics against the
detected face. Every check runs, so one call reports all defects at once.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

import numpy as np

from src.face.detector import Detector
from src.face.errors import QualityViolation
from src.face.types import Detection, ValidationResult
from src.utils.image import decode_image
from src.utils.log import get_logger

logger = get_logger(__name__)

# ITU-R BT.601 luma weights
LUMA_R = 0.299
LUMA_G = 0.587
LUMA_B = 0.114


@dataclass
class QualityConfig:
    min_confidence: float = 0.9
    # Face box area relative to the frame area.
    min_face_ratio: float = 0.10
    max_face_ratio: float = 0.60
    # Max horizontal offset of the face center from the frame center, as a fraction of frame width.
    max_center_offset: float = 0.25
    # Mean perceived luminance (0..255).
    min_brightness: float = 60.0
    max_brightness: float = 200.0


def mean_luminance(image: np.ndarray) -> float:
    """Mean perceived luminance of a BGR / BGRA / grayscale image."""
    arr = np.asarray(image)
    if arr.ndim == 2 or (arr.ndim == 3 and arr.shape[2] == 1):
        return float(np.mean(arr, dtype=np.float64))
    if arr.ndim != 3 or arr.shape[2] < 3:
        raise ValueError(f"Unsupported image shape {arr.shape}")
    # Mean is linear, so weighting the per-channel means equals the mean of per-pixel luma.
    b, g, r = [float(np.mean(arr[..., c], dtype=np.float64)) for c in range(3)]
    return LUMA_R * r + LUMA_G * g + LUMA_B * b


class QualityGate:
    def __init__(self, config: Optional[QualityConfig] = None):
        self.config = config or QualityConfig()

    def _frame_size(
        self, image: np.ndarray, frame_width: Optional[float], frame_height: Optional[float]
    ) -> Tuple[float, float]:
        h, w = image.shape[:2]
        fw = float(frame_width) if frame_width else float(w)
        fh = float(frame_height) if frame_height else float(h)
        if fw <= 0 or fh <= 0:
            raise ValueError(f"Invalid frame size {fw}x{fh}")
        return fw, fh

    def check_confidence(self, detection: Detection) -> Optional[QualityViolation]:
        if float(detection.confidence_score) < self.config.min_confidence:
            return QualityViolation.LOW_CONFIDENCE
        return None

    def check_size(self, detection: Detection, frame_w: float, frame_h: float) -> Optional[QualityViolation]:
        ratio = detection.bounding_box.area / (frame_w * frame_h)
        if ratio < self.config.min_face_ratio:
            return QualityViolation.TOO_FAR
        if ratio > self.config.max_face_ratio:
            return QualityViolation.TOO_CLOSE
        return None

    def check_centering(self, detection: Detection, frame_w: float) -> Optional[QualityViolation]:
        offset = abs(detection.bounding_box.center_x - frame_w / 2.0)
        if offset > frame_w * self.config.max_center_offset:
            return QualityViolation.NOT_CENTERED
        return None

    def check_brightness(self, image: np.ndarray) -> Optional[QualityViolation]:
        brightness = mean_luminance(image)
        if brightness < self.config.min_brightness:
            return QualityViolation.TOO_DARK
        if brightness > self.config.max_brightness:
            return QualityViolation.TOO_BRIGHT
        return None

    def evaluate(
        self,
        detection: Detection,
        image: np.ndarray,
        frame_width: Optional[float] = None,
        frame_height: Optional[float] = None,
    ) -> List[QualityViolation]:
        """Run every check against one detection; returns all violations found."""
        frame_w, frame_h = self._frame_size(image, frame_width, frame_height)
        checks = [
            self.check_confidence(detection),
            self.check_size(detection, frame_w, frame_h),
            self.check_centering(detection, frame_w),
            self.check_brightness(image),
        ]
        return [v for v in checks if v is not None]

    def validate(
        self,
        image: Any,
        detector: Detector,
        frame_width: Optional[float] = None,
        frame_height: Optional[float] = None,
    ) -> ValidationResult:
        """
        Decide whether the face in `image` is acceptable for enrollment.

        Args:
            image: decoded BGR array, or encoded bytes / base64 string
            detector: capability returning at most one Detection
            frame_width: optional capture-frame width used instead of the raster width
            frame_height: optional capture-frame height used instead of the raster height

        Returns:
            ValidationResult; descriptor, score and box are set whenever a face was found
        """
        try:
            if not isinstance(image, np.ndarray):
                image = decode_image(image)

            detection = detector.detect_single_face(image)
            if detection is None:
                return ValidationResult(is_valid=False, errors=[QualityViolation.NO_FACE.value])

            violations = self.evaluate(detection, image, frame_width, frame_height)
        except Exception as e:
            logger.error(f"Face validation error: {e}")
            return ValidationResult(is_valid=False, errors=[QualityViolation.PROCESSING_ERROR.value])

        errors = [v.value for v in violations]
        if errors:
            logger.info(f"Face rejected (score={detection.confidence_score:.3f}): {errors}")

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            descriptor=detection.descriptor,
            detection_score=float(detection.confidence_score),
            face_box=detection.bounding_box,
        )
