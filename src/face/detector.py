"""Face detection + embedding capability.

The pipeline only depends on the `Detector` protocol. `InsightFaceDetector` is
the bundled implementation; it has an explicit lifecycle (created -> ready) and
refuses to run before `load()` succeeded.
"""
from __future__ import annotations

import io

from contextlib import redirect_stderr, redirect_stdout
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Protocol, Tuple

import numpy as np

from src.config import DEFAULT_DET_SIZE, DEFAULT_RECOGNITION_MODEL
from src.face.errors import ModelNotReady
from src.face.types import BoundingBox, Detection, freeze_descriptor
from src.utils.log import get_logger, suppress_fds

logger = get_logger(__name__)


class Detector(Protocol):
    def detect_single_face(self, image: np.ndarray) -> Optional[Detection]:
        """Return the single most confident face in `image`, or None."""
        ...


@dataclass
class DetectorConfig:
    recognition_model: str = DEFAULT_RECOGNITION_MODEL
    det_size: int = DEFAULT_DET_SIZE
    # 'auto' picks the GPU when CUDA is available.
    device: str = "auto"
    # Candidates below this score are discarded by the detector itself.
    det_thresh: float = 0.5
    # Use the unit-norm embedding so distance thresholds are model-independent.
    normalize_embedding: bool = True


class DetectorState(str, Enum):
    CREATED = "created"
    READY = "ready"
    FAILED = "failed"


def resolve_device(device: str) -> str:
    dev = str(device).lower().strip()
    if dev != "auto":
        return dev
    try:
        import torch

        return "gpu" if torch.cuda.is_available() else "cpu"
    except Exception:
        return "cpu"


def _providers_for(device: str) -> Tuple[List[str], int]:
    # ctx_id -1 means CPU, 0 the first GPU
    if device == "gpu":
        return ["CUDAExecutionProvider", "CPUExecutionProvider"], 0
    return ["CPUExecutionProvider"], -1


class InsightFaceDetector:
    def __init__(self, config: Optional[DetectorConfig] = None):
        self.config = config or DetectorConfig()
        self.state = DetectorState.CREATED
        self._app: Any = None

    @property
    def ready(self) -> bool:
        return self.state is DetectorState.READY

    def load(self) -> "InsightFaceDetector":
        """Construct and prepare the InsightFace model pack. Idempotent."""
        if self.ready:
            return self

        # Deferred import: insightface pulls in onnxruntime and model downloads.
        from insightface.app import FaceAnalysis

        device = resolve_device(self.config.device)
        providers, ctx_id = _providers_for(device)
        det_size = (int(self.config.det_size), int(self.config.det_size))

        try:
            with suppress_fds():
                app = FaceAnalysis(
                    name=self.config.recognition_model,
                    providers=providers,
                    allowed_modules=["detection", "recognition"],
                )
            buf = io.StringIO()
            with redirect_stdout(buf), redirect_stderr(buf):
                app.prepare(ctx_id=ctx_id, det_thresh=float(self.config.det_thresh), det_size=det_size)
        except Exception as e:
            self.state = DetectorState.FAILED
            logger.error(f"Failed to load InsightFace models: {e}")
            raise ModelNotReady(f"Failed to load face models: {e}") from e

        self._app = app
        self.state = DetectorState.READY
        logger.info(f"Loaded InsightFace model: {self.config.recognition_model} (device={device}, det_size={det_size})")
        return self

    def detect_single_face(self, image: np.ndarray) -> Optional[Detection]:
        if not self.ready:
            raise ModelNotReady("Models not loaded. Call load() first.")

        faces = self._app.get(image)
        if not faces:
            return None

        face = max(faces, key=lambda f: float(getattr(f, "det_score", 0.0)))
        embedding = face.normed_embedding if self.config.normalize_embedding else face.embedding
        return Detection(
            bounding_box=BoundingBox.from_xyxy(face.bbox),
            confidence_score=float(face.det_score),
            descriptor=freeze_descriptor(embedding),
        )
