"""Normalization of stored descriptor entries.

Reference stores come from several producers (enrollment API, external
databases, ad-hoc imports) and disagree on shape. Every raw entry is classified
into one `StoreShape` and decoded by the function registered for that shape,
yielding a canonical `LabeledDescriptor` (or None when the entry is unusable).
"""
from __future__ import annotations

import json
import numbers

from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np

from src.config import UNKNOWN_LABEL, VECTOR_FIELDS
from src.face.errors import MalformedDescriptor, MalformedStoreEntry
from src.face.types import LabeledDescriptor, freeze_descriptor
from src.utils.log import get_logger

logger = get_logger(__name__)


class StoreShape(str, Enum):
    LABELED = "labeled"  # {label, descriptor | descriptors | face}
    IDENTITY_RECORD = "identity_record"  # {name, code, face}
    DESCRIPTOR_RECORD = "descriptor_record"  # {descriptor, name?, code?}
    BARE_VECTOR = "bare_vector"  # [0.1, 0.2, ...]


def encode_label(name: Any, code: Any) -> str:
    """Serialize an identity record into a label string."""
    return json.dumps({"name": name, "code": code}, ensure_ascii=False)


def decode_label(label: str) -> Any:
    """JSON-decode a label when possible, otherwise return it unchanged."""
    try:
        return json.loads(label)
    except (TypeError, ValueError):
        return label


def _is_number(x: Any) -> bool:
    return isinstance(x, numbers.Real) and not isinstance(x, bool)


def _is_numeric_sequence(value: Any) -> bool:
    if isinstance(value, np.ndarray):
        return value.ndim == 1 and value.size > 0 and np.issubdtype(value.dtype, np.number)
    if isinstance(value, (list, tuple)):
        return len(value) > 0 and all(_is_number(x) for x in value)
    return False


def parse_descriptor(value: Any, error_cls=MalformedDescriptor) -> np.ndarray:
    """Convert a list/tuple/ndarray or a JSON-encoded array into a Descriptor."""
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise error_cls(f"Invalid descriptor format: {e}") from e

    if not _is_numeric_sequence(value):
        raise error_cls("Descriptor must be a non-empty array of numbers")

    vec = np.asarray(value, dtype=np.float64).reshape(-1)
    if not np.all(np.isfinite(vec)):
        raise error_cls("Descriptor contains non-finite values")
    return freeze_descriptor(vec)


def _parse_vectors(value: Any) -> Tuple[np.ndarray, ...]:
    """One vector or a list of vectors (several enrollment photos) per entry."""
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise MalformedStoreEntry(f"Invalid descriptor JSON: {e}") from e

    if _is_numeric_sequence(value):
        return (parse_descriptor(value, error_cls=MalformedStoreEntry),)

    if isinstance(value, np.ndarray) and value.ndim == 2:
        value = list(value)
    if isinstance(value, (list, tuple)) and value:
        return tuple(parse_descriptor(v, error_cls=MalformedStoreEntry) for v in value)

    raise MalformedStoreEntry("Entry carries no usable descriptor")


def _metadata(raw: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in raw.items() if k not in VECTOR_FIELDS}


def classify(raw: Any) -> Optional[StoreShape]:
    """Return the shape of a raw (already JSON-decoded) entry, or None."""
    if isinstance(raw, Mapping):
        if raw.get("label") is not None and any(k in raw for k in VECTOR_FIELDS):
            return StoreShape.LABELED
        if raw.get("face") is not None:
            return StoreShape.IDENTITY_RECORD
        if raw.get("descriptor") is not None:
            return StoreShape.DESCRIPTOR_RECORD
        return None
    if _is_numeric_sequence(raw):
        return StoreShape.BARE_VECTOR
    return None


def _decode_labeled(raw: Mapping[str, Any], index: int) -> LabeledDescriptor:
    field = next(k for k in ("descriptors", "descriptor", "face") if k in raw)
    label = raw["label"]
    if not isinstance(label, str):
        logger.warning(f"Store entry #{index}: non-string label {label!r}, using its JSON text")
        label = json.dumps(label, ensure_ascii=False, default=str)
    return LabeledDescriptor(
        label=label,
        descriptors=_parse_vectors(raw[field]),
        metadata=_metadata(raw),
        index=index,
    )


def _decode_identity_record(raw: Mapping[str, Any], index: int) -> LabeledDescriptor:
    # name/code are carried verbatim; the unknown fallback belongs to descriptor records only
    return LabeledDescriptor(
        label=encode_label(raw.get("name"), raw.get("code")),
        descriptors=_parse_vectors(raw["face"]),
        metadata=_metadata(raw),
        index=index,
    )


def _decode_descriptor_record(raw: Mapping[str, Any], index: int) -> LabeledDescriptor:
    name = raw.get("name")
    code = raw.get("code")
    if name is None and code is None:
        label = UNKNOWN_LABEL
    else:
        label = encode_label(
            name if name is not None else UNKNOWN_LABEL,
            code if code is not None else UNKNOWN_LABEL,
        )
    return LabeledDescriptor(
        label=label,
        descriptors=_parse_vectors(raw["descriptor"]),
        metadata=_metadata(raw),
        index=index,
    )


def _decode_bare_vector(raw: Any, index: int) -> LabeledDescriptor:
    return LabeledDescriptor(
        label=UNKNOWN_LABEL,
        descriptors=_parse_vectors(raw),
        metadata=None,
        index=index,
    )


_DECODERS: Dict[StoreShape, Callable[[Any, int], LabeledDescriptor]] = {
    StoreShape.LABELED: _decode_labeled,
    StoreShape.IDENTITY_RECORD: _decode_identity_record,
    StoreShape.DESCRIPTOR_RECORD: _decode_descriptor_record,
    StoreShape.BARE_VECTOR: _decode_bare_vector,
}


def normalize(raw: Any, allow_bare: bool = False, index: int = -1) -> Optional[LabeledDescriptor]:
    """Normalize one raw store entry into a `LabeledDescriptor`.

    Args:
        raw: entry as received (dict, list of numbers, or a JSON string of either)
        allow_bare: accept bare numeric arrays as unlabeled vectors
        index: position of the entry in the caller's store

    Returns:
        the canonical entry, or None when the entry is malformed or of an unsupported shape
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning(f"Skipping store entry #{index}: not valid JSON")
            return None

    shape = classify(raw)
    if shape is None:
        logger.warning(f"Skipping store entry #{index}: unrecognized shape ({type(raw).__name__})")
        return None
    if shape is StoreShape.BARE_VECTOR and not allow_bare:
        logger.warning(f"Skipping store entry #{index}: bare vector without label")
        return None

    try:
        return _DECODERS[shape](raw, index)
    except MalformedStoreEntry as e:
        logger.warning(f"Skipping store entry #{index} ({shape.value}): {e}")
        return None


def normalize_store(entries: Optional[Iterable[Any]], allow_bare: bool = False) -> List[LabeledDescriptor]:
    """Normalize a whole store, dropping entries that fail to decode."""
    if entries is None:
        return []
    out: List[LabeledDescriptor] = []
    for i, raw in enumerate(entries):
        entry = normalize(raw, allow_bare=allow_bare, index=i)
        if entry is not None:
            out.append(entry)
    return out
