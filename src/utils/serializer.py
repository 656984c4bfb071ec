from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from src.face.types import BoundingBox, Matched, MatchResult, NotMatched, RankedMatch, ValidationResult


def _descriptor_to_list(vec: Optional[np.ndarray]) -> Optional[List[float]]:
    if vec is None:
        return None
    return [float(x) for x in np.asarray(vec).reshape(-1)]


def serialize_box(box: Optional[BoundingBox]) -> Optional[Dict[str, float]]:
    if box is None:
        return None
    return {"x": float(box.x), "y": float(box.y), "width": float(box.width), "height": float(box.height)}


def serialize_validation(result: ValidationResult) -> Dict:
    """Serialize a ValidationResult into the JSON shape returned to callers.

    Optional fields are omitted (not null) when no face was detected.
    """
    out: Dict[str, Any] = {"isValid": bool(result.is_valid), "errors": list(result.errors)}
    if result.descriptor is not None:
        out["descriptor"] = _descriptor_to_list(result.descriptor)
    if result.detection_score is not None:
        out["detectionScore"] = float(result.detection_score)
    if result.face_box is not None:
        out["faceBox"] = serialize_box(result.face_box)
    return out


def serialize_match(result: MatchResult) -> Dict:
    if isinstance(result, RankedMatch):
        return {
            "index": int(result.index),
            "label": result.label,
            "similarity": float(result.similarity),
            "distance": float(result.distance),
            "metadata": result.metadata,
        }
    if isinstance(result, Matched):
        return {
            "matched": True,
            "label": result.label,
            "identity": result.identity,
            "distance": float(result.distance),
            "similarity": float(result.similarity),
        }
    if isinstance(result, NotMatched):
        return {
            "matched": False,
            "reason": result.reason,
            "distance": float(result.distance) if result.distance is not None else None,
        }
    raise TypeError(f"Unsupported match result: {type(result).__name__}")


def serialize_matches(results: Sequence[MatchResult], threshold: Optional[float] = None) -> Dict:
    ranked = [r for r in results if isinstance(r, RankedMatch)]
    out: Dict[str, Any] = {"matches": [serialize_match(r) for r in results]}
    if threshold is not None:
        out["threshold"] = float(threshold)
    if len(ranked) == len(results):
        out["message"] = f"Found {len(results)} match(es)"
    else:
        hits = sum(1 for r in results if isinstance(r, Matched))
        out["message"] = "Match found" if hits else "No match"
    return out
