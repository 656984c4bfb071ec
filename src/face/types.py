from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np


def freeze_descriptor(vec) -> np.ndarray:
    """Copy `vec` into a read-only 1D float64 array."""
    arr = np.array(vec, dtype=np.float64).reshape(-1)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class BoundingBox:
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_xyxy(cls, bbox) -> "BoundingBox":
        x1, y1, x2, y2 = [float(v) for v in bbox]
        return cls(x=x1, y=y1, width=max(0.0, x2 - x1), height=max(0.0, y2 - y1))

    @property
    def area(self) -> float:
        return float(self.width) * float(self.height)

    @property
    def center_x(self) -> float:
        return float(self.x) + float(self.width) / 2.0

    def to_xyxy(self) -> Tuple[int, int, int, int]:
        return (
            int(round(self.x)),
            int(round(self.y)),
            int(round(self.x + self.width)),
            int(round(self.y + self.height)),
        )


@dataclass(frozen=True)
class Detection:
    bounding_box: BoundingBox
    confidence_score: float
    descriptor: np.ndarray


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    descriptor: Optional[np.ndarray] = None
    detection_score: Optional[float] = None
    face_box: Optional[BoundingBox] = None


@dataclass(frozen=True)
class LabeledDescriptor:
    """Canonical store entry: one label owning one or more reference vectors.

    `index` is the position of the raw entry in the caller's store; `metadata` is
    the raw record minus its vector fields (None for bare vectors).
    """

    label: str
    descriptors: Tuple[np.ndarray, ...]
    metadata: Optional[Dict[str, Any]] = None
    index: int = -1


@dataclass(frozen=True)
class Matched:
    label: str
    identity: Any
    distance: float
    similarity: float


class NotMatchedReason(str, Enum):
    DISTANCE_TOO_HIGH = "distance above threshold"
    UNKNOWN_LABEL = "closest reference is the unknown label"
    EMPTY_STORE = "no reference descriptors"
    NO_FACE = "no face detected"


@dataclass(frozen=True)
class NotMatched:
    reason: str
    distance: Optional[float] = None


@dataclass(frozen=True)
class RankedMatch:
    index: int
    label: str
    similarity: float
    distance: float
    metadata: Optional[Dict[str, Any]] = None


MatchResult = Union[Matched, NotMatched, RankedMatch]
