from __future__ import annotations

from enum import Enum


class FaceServiceError(Exception):
    """Base class for all errors raised by the face pipeline."""


class NoFaceDetected(FaceServiceError):
    pass


class MalformedStoreEntry(FaceServiceError):
    """A reference store entry could not be decoded; callers skip it."""


class MalformedDescriptor(FaceServiceError, ValueError):
    """A query descriptor is not a numeric vector (or JSON encoding of one)."""


class DescriptorLengthMismatch(FaceServiceError, ValueError):
    def __init__(self, expected: int, actual: int):
        self.expected = int(expected)
        self.actual = int(actual)
        super().__init__(f"Descriptors must have the same length: {self.expected} vs {self.actual}")


class DecodeFailure(FaceServiceError):
    pass


class ModelNotReady(FaceServiceError):
    pass


class DetectionFailure(FaceServiceError):
    """The detection/recognition model raised while processing an image."""


class InvalidThreshold(FaceServiceError, ValueError):
    pass


class QualityViolation(str, Enum):
    """Human-readable reasons reported by the quality gate."""

    NO_FACE = "no face detected"
    LOW_CONFIDENCE = "low detection quality - take another photo"
    TOO_FAR = "face too far - move closer to the camera"
    TOO_CLOSE = "face too close - move away from the camera"
    NOT_CENTERED = "face not centered - position yourself in the center"
    TOO_DARK = "photo too dark - improve the lighting"
    TOO_BRIGHT = "photo too bright - reduce the lighting"
    PROCESSING_ERROR = "error processing the image"
