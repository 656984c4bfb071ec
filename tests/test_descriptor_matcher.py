from __future__ import annotations

import json
import math

from pathlib import Path

import sys

import numpy as np
import pytest

repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from src.face.errors import DescriptorLengthMismatch, InvalidThreshold, MalformedDescriptor
from src.face.matcher import (
    ManualDistanceMatcher,
    ModelAssistedMatcher,
    ModelAssistedMatcherConfig,
    coerce_threshold,
)
from src.face.types import Matched, NotMatched, NotMatchedReason, RankedMatch


def _unit_with_cos(c: float) -> list:
    """2D unit vector whose cosine similarity with [1, 0] is `c`."""
    return [c, math.sqrt(1.0 - c * c)]


QUERY = [1.0, 0.0]


def encode(name: str, code: str) -> str:
    return json.dumps({"name": name, "code": code})


# ---------------------------------------------------------------------------
# Best-match policy (nearest label by Euclidean distance)
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("threshold", [0.01, 0.5, 2.0])
def test_exact_vector_is_matched_with_zero_distance(threshold: float):
    store = [
        {"label": encode("Ana", "A1"), "descriptor": [0.3, 0.9]},
        {"name": "Bruno", "code": "B2", "face": json.dumps(QUERY)},
    ]
    [result] = ModelAssistedMatcher().match(QUERY, store, threshold)
    assert isinstance(result, Matched)
    assert result.distance == 0.0
    assert result.similarity == 1.0
    assert result.identity == {"name": "Bruno", "code": "B2"}


def test_distance_above_threshold_is_not_matched():
    store = [{"label": "far", "descriptor": [0.0, 1.0]}]
    [result] = ModelAssistedMatcher().match(QUERY, store, 0.5)
    assert isinstance(result, NotMatched)
    assert result.reason == NotMatchedReason.DISTANCE_TOO_HIGH.value
    assert result.distance == pytest.approx(math.sqrt(2.0))


def test_unknown_label_never_matches():
    store = [
        {"label": "unknown", "descriptor": QUERY},
        {"label": "someone", "descriptor": [0.9, 0.1]},
    ]
    [result] = ModelAssistedMatcher().match(QUERY, store, 0.5)
    assert isinstance(result, NotMatched)
    assert result.reason == NotMatchedReason.UNKNOWN_LABEL.value
    assert result.distance == 0.0


def test_label_keeps_minimum_distance_over_its_vectors():
    store = [
        {"label": "a", "descriptor": [0.0, 1.0]},
        {"label": "b", "descriptor": [0.8, 0.2]},
        # second entry for "a" holds its closest vector
        {"label": "a", "descriptors": [[0.5, 0.5], [0.95, 0.0]]},
    ]
    matcher = ModelAssistedMatcher()
    distances = dict(matcher.label_distances(QUERY, store))
    assert distances["a"] == pytest.approx(0.05)
    assert distances["b"] == pytest.approx(math.hypot(0.2, 0.2))

    [result] = matcher.match(QUERY, store)
    assert isinstance(result, Matched)
    assert result.label == "a"
    assert result.identity == "a"
    assert result.similarity == pytest.approx(0.95)


def test_tie_goes_to_first_label_in_store_order():
    store = [
        {"label": "first", "descriptor": [0.9, 0.1]},
        {"label": "second", "descriptor": [0.9, 0.1]},
    ]
    [result] = ModelAssistedMatcher().match(QUERY, store)
    assert result.label == "first"


def test_default_best_match_threshold_is_half():
    store = [{"label": "x", "descriptor": [0.45, 0.0]}]  # distance 0.55
    [result] = ModelAssistedMatcher().match(QUERY, store)
    assert isinstance(result, NotMatched)

    [result] = ModelAssistedMatcher(ModelAssistedMatcherConfig(threshold=0.6)).match(QUERY, store)
    assert isinstance(result, Matched)


@pytest.mark.parametrize("store", [[], None, [{"foo": 1}, "garbage", [0.1, 0.2]]])
def test_empty_or_unusable_store_is_not_matched(store):
    [result] = ModelAssistedMatcher().match(QUERY, store)
    assert isinstance(result, NotMatched)
    assert result.reason == NotMatchedReason.EMPTY_STORE.value
    assert result.distance is None


# ---------------------------------------------------------------------------
# Ranked policy (cosine similarity threshold)
# ---------------------------------------------------------------------------


def test_ranked_keeps_entries_above_threshold_best_first():
    store = [_unit_with_cos(0.9), _unit_with_cos(0.4), _unit_with_cos(0.7)]
    results = ManualDistanceMatcher().match(QUERY, store, 0.6)

    assert len(results) == 2
    assert all(isinstance(r, RankedMatch) for r in results)
    assert [r.similarity for r in results] == pytest.approx([0.9, 0.7])
    assert [r.index for r in results] == [0, 2]
    assert results[0].distance == pytest.approx(math.sqrt(2.0 - 2.0 * 0.9))


def test_ranked_ties_keep_store_order():
    store = [
        {"descriptor": _unit_with_cos(0.8), "name": "x"},
        {"descriptor": [0.95, 0.0], "name": "y"},
        {"descriptor": _unit_with_cos(0.8), "name": "z"},
    ]
    results = ManualDistanceMatcher().match(QUERY, store)
    assert [r.index for r in results] == [1, 0, 2]


def test_ranked_default_threshold_is_point_six():
    store = [_unit_with_cos(0.65), _unit_with_cos(0.55)]
    results = ManualDistanceMatcher().match(QUERY, store)
    assert [r.index for r in results] == [0]


def test_ranked_metadata_drops_vector_fields():
    store = [
        {"name": "Ana", "code": "A1", "face": json.dumps(QUERY)},
        QUERY,
    ]
    results = ManualDistanceMatcher().match(QUERY, store)
    assert results[0].metadata == {"name": "Ana", "code": "A1"}
    assert results[1].metadata is None


def test_ranked_returns_empty_list_when_nothing_qualifies():
    assert ManualDistanceMatcher().match(QUERY, [[0.0, 1.0]], 0.6) == []
    assert ManualDistanceMatcher().match(QUERY, [], 0.6) == []


def test_ranked_zero_vector_in_store_scores_zero():
    results = ManualDistanceMatcher().match(QUERY, [[0.0, 0.0]], 0.0)
    assert len(results) == 1
    assert results[0].similarity == 0.0


# ---------------------------------------------------------------------------
# Shared behaviour
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("matcher", [ManualDistanceMatcher(), ModelAssistedMatcher()])
def test_malformed_store_entries_are_skipped(matcher):
    store = [
        {"name": "broken", "code": "0", "face": "[0.1, 0.2"},
        {"label": "ok", "descriptor": QUERY},
    ]
    results = matcher.match(QUERY, store, 0.5)
    assert len(results) == 1
    assert results[0].label == "ok"


@pytest.mark.parametrize("matcher", [ManualDistanceMatcher(), ModelAssistedMatcher()])
def test_malformed_query_raises(matcher):
    with pytest.raises(MalformedDescriptor):
        matcher.match("[1.0, 0.", [{"label": "ok", "descriptor": QUERY}])


@pytest.mark.parametrize("matcher", [ManualDistanceMatcher(), ModelAssistedMatcher()])
def test_length_mismatch_raises(matcher):
    store = [{"label": "ok", "descriptor": QUERY}, {"label": "legacy", "descriptor": [1.0, 0.0, 0.0]}]
    with pytest.raises(DescriptorLengthMismatch):
        matcher.match(QUERY, store)


@pytest.mark.parametrize("matcher", [ManualDistanceMatcher(), ModelAssistedMatcher()])
def test_query_may_be_json_string_or_array(matcher):
    store = [{"label": "ok", "descriptor": QUERY}]
    from_string = matcher.match(json.dumps(QUERY), store)
    from_array = matcher.match(np.asarray(QUERY), store)
    assert from_string == from_array


def test_coerce_threshold():
    assert coerce_threshold(None, 0.5) == 0.5
    assert coerce_threshold(0.3, 0.5) == 0.3
    assert coerce_threshold(1, 0.5) == 1.0
    for bad in ("0.3", True, float("nan"), [0.3]):
        with pytest.raises(InvalidThreshold):
            coerce_threshold(bad, 0.5)
