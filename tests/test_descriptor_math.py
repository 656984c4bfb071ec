from __future__ import annotations

from pathlib import Path

import sys

import numpy as np
import pytest

repo_root = Path(__file__).resolve().parents[1]
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from src.face.errors import DescriptorLengthMismatch
from src.utils.math import cosine_similarities, cosine_similarity, euclidean_distance, euclidean_distances


def _random_descriptors(n: int, dim: int = 128, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.normal(size=(n, dim))


def test_distance_to_self_is_zero_and_similarity_one():
    for vec in _random_descriptors(5):
        assert euclidean_distance(vec, vec) == 0.0
        assert cosine_similarity(vec, vec) == pytest.approx(1.0, abs=1e-9)


def test_euclidean_distance_is_symmetric():
    a, b = _random_descriptors(2, seed=1)
    assert euclidean_distance(a, b) == euclidean_distance(b, a)


def test_euclidean_distance_known_value():
    assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)


def test_cosine_similarity_zero_vector_is_exactly_zero():
    zero = np.zeros(128)
    other = _random_descriptors(1)[0]
    assert cosine_similarity(zero, other) == 0.0
    assert cosine_similarity(other, zero) == 0.0
    assert cosine_similarity(zero, zero) == 0.0


def test_length_mismatch_fails_instead_of_truncating():
    with pytest.raises(DescriptorLengthMismatch) as ei:
        euclidean_distance([1.0, 2.0, 3.0], [1.0, 2.0])
    assert ei.value.expected == 3
    assert ei.value.actual == 2

    with pytest.raises(DescriptorLengthMismatch):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])

    with pytest.raises(DescriptorLengthMismatch):
        euclidean_distances([1.0, 2.0], np.ones((3, 4)))


def test_rowwise_metrics_agree_with_scalar_versions():
    query = _random_descriptors(1, seed=2)[0]
    mat = _random_descriptors(6, seed=3)
    mat[4] = 0.0

    dists = euclidean_distances(query, mat)
    sims = cosine_similarities(query, mat)

    for i, row in enumerate(mat):
        assert dists[i] == pytest.approx(euclidean_distance(query, row))
        assert sims[i] == pytest.approx(cosine_similarity(query, row))
    assert sims[4] == 0.0


def test_rowwise_metrics_on_empty_matrix():
    assert euclidean_distances([1.0, 2.0], np.zeros((0, 2))).shape == (0,)
    assert cosine_similarities([1.0, 2.0], np.zeros((0, 2))).shape == (0,)


def test_cosine_stays_finite_for_huge_vectors():
    big = [1e200, 1e200, -3e199]
    assert cosine_similarity(big, big) == pytest.approx(1.0)
    assert cosine_similarity(big, [-x for x in big]) == pytest.approx(-1.0)

    rows = np.array([big, [1e-200, 0.0, 0.0], [0.0, 0.0, 0.0]])
    sims = cosine_similarities(big, rows)
    assert np.all(np.isfinite(sims))
    assert sims[0] == pytest.approx(1.0)
    assert sims[2] == 0.0
