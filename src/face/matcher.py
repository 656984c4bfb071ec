from __future__ import annotations

import logging
import math
import numbers

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from src.config import DEFAULT_BEST_MATCH_THRESHOLD, DEFAULT_RANKED_THRESHOLD, UNKNOWN_LABEL
from src.face.codec import decode_label, normalize_store, parse_descriptor
from src.face.errors import DescriptorLengthMismatch, InvalidThreshold
from src.face.types import LabeledDescriptor, Matched, MatchResult, NotMatched, NotMatchedReason, RankedMatch
from src.utils.log import get_logger
from src.utils.math import cosine_similarities, euclidean_distances

logger = get_logger(__name__)


def coerce_threshold(value: Any, default: float) -> float:
    """Return `value` as a float threshold, or `default` when it is None."""
    if value is None:
        return float(default)
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise InvalidThreshold(f"threshold must be a number, got {value!r}")
    thr = float(value)
    if math.isnan(thr):
        raise InvalidThreshold("threshold must not be NaN")
    return thr


def _flatten(
    query: np.ndarray, entries: Sequence[LabeledDescriptor]
) -> Tuple[Optional[np.ndarray], List[LabeledDescriptor]]:
    """Stack every reference vector into an (N, D) matrix; row -> owning entry."""
    rows: List[np.ndarray] = []
    owners: List[LabeledDescriptor] = []
    dim = int(query.shape[0])
    for entry in entries:
        for vec in entry.descriptors:
            if int(vec.shape[0]) != dim:
                raise DescriptorLengthMismatch(dim, int(vec.shape[0]))
            rows.append(vec)
            owners.append(entry)
    if not rows:
        return None, []
    return np.stack(rows, axis=0), owners


@dataclass
class ManualMatcherConfig:
    # Minimum cosine similarity for an entry to be reported.
    threshold: float = DEFAULT_RANKED_THRESHOLD


class ManualDistanceMatcher:
    """Ranked policy: every reference vector whose cosine similarity clears the
    threshold is reported, best first. Euclidean distance is computed alongside
    for display only.
    """

    def __init__(self, config: Optional[ManualMatcherConfig] = None):
        self.config = config or ManualMatcherConfig()

    def match(self, query: Any, store: Optional[Sequence[Any]], threshold: Any = None) -> List[RankedMatch]:
        q = parse_descriptor(query)
        thr = coerce_threshold(threshold, self.config.threshold)

        entries = normalize_store(store, allow_bare=True)
        mat, owners = _flatten(q, entries)
        if mat is None:
            return []

        sims = cosine_similarities(q, mat)
        dists = euclidean_distances(q, mat)

        matches: List[RankedMatch] = []
        for row, owner in enumerate(owners):
            sim = float(sims[row])
            if sim >= thr:
                matches.append(
                    RankedMatch(
                        index=owner.index,
                        label=owner.label,
                        similarity=sim,
                        distance=float(dists[row]),
                        metadata=dict(owner.metadata) if owner.metadata is not None else None,
                    )
                )

        # list.sort is stable: equal similarities keep store order
        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.debug(f"ranked match: {len(matches)}/{len(owners)} vectors >= {thr:.3f}")
        return matches


@dataclass
class ModelAssistedMatcherConfig:
    # Maximum Euclidean distance accepted for the nearest label.
    threshold: float = DEFAULT_BEST_MATCH_THRESHOLD
    unknown_label: str = UNKNOWN_LABEL
    # Number of per-label distances written to the debug log.
    topk_debug: int = 5


class ModelAssistedMatcher:
    """Best-match policy: nearest label by minimum Euclidean distance.

    A label may own several vectors (and several store entries); its distance is
    the minimum over all of them. Ties go to the label seen first in the store.
    """

    def __init__(self, config: Optional[ModelAssistedMatcherConfig] = None):
        self.config = config or ModelAssistedMatcherConfig()

    def label_distances(self, query: Any, store: Optional[Sequence[Any]]) -> List[Tuple[str, float]]:
        """Return (label, min distance) for every label, in first-seen order."""
        q = parse_descriptor(query)
        entries = normalize_store(store, allow_bare=False)
        mat, owners = _flatten(q, entries)
        if mat is None:
            return []

        label_index: Dict[str, int] = {}
        for owner in owners:
            label_index.setdefault(owner.label, len(label_index))
        label_ids = np.asarray([label_index[o.label] for o in owners], dtype=np.int64)

        dists = euclidean_distances(q, mat)
        best_per_label = np.full((len(label_index),), np.inf, dtype=np.float64)
        np.minimum.at(best_per_label, label_ids, dists)

        return [(label, float(best_per_label[i])) for label, i in label_index.items()]

    def match(self, query: Any, store: Optional[Sequence[Any]], threshold: Any = None) -> List[MatchResult]:
        thr = coerce_threshold(threshold, self.config.threshold)

        per_label = self.label_distances(query, store)
        if not per_label:
            return [NotMatched(reason=NotMatchedReason.EMPTY_STORE.value)]

        # argmin keeps the first occurrence, i.e. the first label in store order
        best_idx = int(np.argmin([d for _, d in per_label]))
        label, distance = per_label[best_idx]

        if logger.isEnabledFor(logging.DEBUG):
            topk = sorted(per_label, key=lambda x: x[1])[: max(1, int(self.config.topk_debug))]
            logger.debug(f"best match: thr={thr:.3f}, top{len(topk)}={topk}")

        if distance > thr:
            return [NotMatched(reason=NotMatchedReason.DISTANCE_TOO_HIGH.value, distance=distance)]
        if label == self.config.unknown_label:
            return [NotMatched(reason=NotMatchedReason.UNKNOWN_LABEL.value, distance=distance)]

        return [
            Matched(
                label=label,
                identity=decode_label(label),
                distance=distance,
                similarity=1.0 - distance,
            )
        ]
