from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from src.face.detector import Detector, DetectorConfig, InsightFaceDetector
from src.face.errors import DetectionFailure, FaceServiceError, ModelNotReady
from src.face.matcher import (
    ManualDistanceMatcher,
    ManualMatcherConfig,
    ModelAssistedMatcher,
    ModelAssistedMatcherConfig,
)
from src.face.quality import QualityConfig, QualityGate
from src.face.types import MatchResult, NotMatched, NotMatchedReason, ValidationResult
from src.utils.image import decode_image
from src.utils.log import get_logger

logger = get_logger(__name__)

POLICY_RANKED = "ranked"
POLICY_BEST = "best"
POLICIES = (POLICY_RANKED, POLICY_BEST)


@dataclass
class ServiceConfig:
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    ranked: ManualMatcherConfig = field(default_factory=ManualMatcherConfig)
    best: ModelAssistedMatcherConfig = field(default_factory=ModelAssistedMatcherConfig)


class FaceService:
    """
    Enrollment validation + recognition over a caller-supplied store.

    The detector is injected (or built by `create`) and shared read-only;
    without one only descriptor matching is available. The service keeps no
    per-call state, so one instance can serve concurrent calls.
    """

    def __init__(self, detector: Optional[Detector] = None, config: Optional[ServiceConfig] = None):
        self.config = config or ServiceConfig()
        self.detector = detector
        self.quality_gate = QualityGate(self.config.quality)
        self.matchers = {
            POLICY_RANKED: ManualDistanceMatcher(self.config.ranked),
            POLICY_BEST: ModelAssistedMatcher(self.config.best),
        }

    @classmethod
    def create(cls, config: Optional[ServiceConfig] = None) -> "FaceService":
        """Build the service with an InsightFace detector, loading models once."""
        config = config or ServiceConfig()
        detector = InsightFaceDetector(config.detector).load()
        return cls(detector, config)

    @property
    def models_ready(self) -> bool:
        if self.detector is None:
            return False
        # Detectors without a lifecycle (test doubles, custom adapters) are always ready.
        return bool(getattr(self.detector, "ready", True))

    def _require_ready(self) -> None:
        if not self.models_ready:
            raise ModelNotReady("Models are still loading. Please try again in a moment.")

    def _matcher(self, policy: str):
        try:
            return self.matchers[policy]
        except KeyError:
            raise ValueError(f"Unknown matching policy: {policy!r} (expected one of {POLICIES})") from None

    def health(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "modelsReady": self.models_ready,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def validate(
        self, image: Any, frame_width: Optional[float] = None, frame_height: Optional[float] = None
    ) -> ValidationResult:
        self._require_ready()
        return self.quality_gate.validate(image, self.detector, frame_width, frame_height)

    def recognize_descriptor(
        self,
        descriptor: Any,
        store: Optional[Sequence[Any]],
        threshold: Any = None,
        policy: str = POLICY_RANKED,
    ) -> List[MatchResult]:
        """Match a descriptor (array or JSON string) against `store`."""
        return self._matcher(policy).match(descriptor, store, threshold)

    def recognize(
        self,
        image: Any,
        store: Optional[Sequence[Any]],
        threshold: Any = None,
        policy: str = POLICY_RANKED,
    ) -> List[MatchResult]:
        """
        Detect the face in `image` and match its descriptor against `store`.

        Returns [] (ranked) or a single NotMatched (best) when no face is found.
        Decode failures propagate as DecodeFailure; model errors as DetectionFailure.
        """
        self._require_ready()
        matcher = self._matcher(policy)

        if not isinstance(image, np.ndarray):
            image = decode_image(image)

        try:
            detection = self.detector.detect_single_face(image)
        except FaceServiceError:
            raise
        except Exception as e:
            logger.error(f"Face detection failed: {e}")
            raise DetectionFailure(f"Error processing the image: {e}") from e
        if detection is None:
            logger.warning("No face detected in recognition image")
            if policy == POLICY_BEST:
                return [NotMatched(reason=NotMatchedReason.NO_FACE.value)]
            return []

        return matcher.match(detection.descriptor, store, threshold)
