from __future__ import annotations

from typing import Tuple

import numpy as np

from src.face.errors import DescriptorLengthMismatch


def _as_vector(vec) -> np.ndarray:
    return np.asarray(vec, dtype=np.float64).reshape(-1)


def _unit_scale(vec: np.ndarray) -> np.ndarray:
    # rescale so max |x| == 1; squared norms then stay finite
    peak = np.max(np.abs(vec), axis=-1, keepdims=True) if vec.size else np.ones(vec.shape[:-1] + (1,))
    return vec / np.where(peak > 0.0, peak, 1.0)


def _check_lengths(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[0] != b.shape[0]:
        raise DescriptorLengthMismatch(a.shape[0], b.shape[0])


def euclidean_distance(a, b) -> float:
    """Euclidean (L2) distance between two 1D descriptors."""
    va = _as_vector(a)
    vb = _as_vector(b)
    _check_lengths(va, vb)
    return float(np.linalg.norm(va - vb))


def cosine_similarity(a, b) -> float:
    """Cosine similarity for 1D vectors; 0.0 when either vector has zero norm."""
    va = _as_vector(a)
    vb = _as_vector(b)
    _check_lengths(va, vb)
    va = _unit_scale(va)
    vb = _unit_scale(vb)
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


def _as_rows(query, matrix) -> Tuple[np.ndarray, np.ndarray]:
    q = _as_vector(query)
    mat = np.asarray(matrix, dtype=np.float64)
    if mat.ndim == 1:
        mat = mat.reshape(1, -1)
    if mat.ndim != 2:
        raise ValueError(f"Unsupported ndim={mat.ndim}")
    if mat.shape[0] > 0:
        _check_lengths(q, mat[0])
    return q, mat


def euclidean_distances(query, matrix) -> np.ndarray:
    """Row-wise Euclidean distance from `query` (D,) to every row of `matrix` (N, D)."""
    q, mat = _as_rows(query, matrix)
    if mat.shape[0] == 0:
        return np.zeros((0,), dtype=np.float64)
    return np.linalg.norm(mat - q, axis=1)


def cosine_similarities(query, matrix) -> np.ndarray:
    """Row-wise cosine similarity; rows (or a query) with zero norm score exactly 0."""
    q, mat = _as_rows(query, matrix)
    out = np.zeros((mat.shape[0],), dtype=np.float64)
    if mat.shape[0] == 0:
        return out
    q = _unit_scale(q)
    mat = _unit_scale(mat)
    qn = float(np.linalg.norm(q))
    if qn == 0.0:
        return out
    norms = np.linalg.norm(mat, axis=1)
    nz = norms > 0.0
    out[nz] = (mat[nz] @ q) / (norms[nz] * qn)
    return out
