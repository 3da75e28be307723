"""Hash utilities with explicit canonicalization rules for stable hashing.

Key rules:
- Object keys sorted recursively
- Arrays preserve order
- Annotation keys (non-string keys attached by the diff primitive) are skipped
- Strings normalized to NFC
- NaN and Infinity banned (hard validation error)
- Non-JSON types forbidden

Hashes are prefixed with ``"sha256:"``.
"""

import hashlib
import math
import unicodedata
from typing import Any, Dict, Optional, Tuple

from apidelta._internal.canonical_json import canonical_dumps
from apidelta.codes import Notifications
from apidelta.kernel.diff import MISSING, AnnotationKey, TOLERANT_HASH_KEY, get_annotation


class CanonicalizationError(ValueError):
    """Raised when an object cannot be canonicalized."""
    pass


# Keys that never change the shape of a schema fragment.
TOLERANT_IGNORED_KEYS = frozenset({"description", "summary", "title", "example", "examples"})


def _normalize_string(s: str) -> str:
    return unicodedata.normalize("NFC", s)


def _canonicalize_value(obj: Any, path: str, tolerant: bool) -> Any:
    if obj is None or isinstance(obj, bool):
        return obj
    elif isinstance(obj, int):
        return obj
    elif isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            raise CanonicalizationError(
                f"Invalid number at {path or '$'}: NaN or Inf not allowed"
            )
        # 1.0 and 1 are the same JSON number
        return int(obj) if obj.is_integer() else obj
    elif isinstance(obj, str):
        return _normalize_string(obj)
    elif isinstance(obj, dict):
        result = {}
        for key, value in obj.items():
            if isinstance(key, AnnotationKey):
                continue
            if not isinstance(key, str):
                raise CanonicalizationError(
                    f"Dictionary keys must be strings at {path or '$'}, got {type(key).__name__}"
                )
            if tolerant and (key in TOLERANT_IGNORED_KEYS or key.startswith("x-")):
                continue
            child_path = f"{path}.{key}" if path else key
            result[_normalize_string(key)] = _canonicalize_value(value, child_path, tolerant)
        return result
    elif isinstance(obj, (list, tuple)):
        return [
            _canonicalize_value(item, f"{path}[{i}]", tolerant)
            for i, item in enumerate(obj)
        ]
    else:
        raise CanonicalizationError(
            f"Non-JSON type at {path or '$'}: {type(obj).__name__}. "
            f"Only None, bool, int, float, str, dict, and list are allowed."
        )


def canonicalize_json(obj: Any, tolerant: bool = False) -> str:
    """Canonicalize a JSON-compatible object to a stable string representation.

    Args:
        obj: The object to canonicalize
        tolerant: If True, drop documentation-only keys (description, summary,
            title, example(s)) and ``x-`` extensions before serializing

    Returns:
        Canonical JSON string

    Raises:
        CanonicalizationError: If object contains non-JSON types or NaN/Inf
    """
    return canonical_dumps(_canonicalize_value(obj, "", tolerant))


def _digest(canonical_str: str) -> str:
    return "sha256:" + hashlib.sha256(canonical_str.encode("utf-8")).hexdigest()


def hash_value(value: Any) -> str:
    """Structural content hash of a normalized value, independent of key order."""
    if value is MISSING:
        return ""
    return _digest(canonicalize_json(value))


def tolerant_hash(value: Any) -> str:
    """Content hash that survives documentation edits and vendor extensions."""
    return _digest(canonicalize_json(value, tolerant=True))


class HashCache:
    """Memoizes hashes by object identity for one normalization output graph.

    Construct one per comparison run and drop it afterwards: identity only
    correlates with content inside a single object graph. Entries keep a
    reference to the hashed object so its id cannot be recycled while the
    cache is alive. The first computed hash for an object wins.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, Tuple[Any, str]] = {}

    def hash(self, value: Any) -> str:
        if not isinstance(value, (dict, list)):
            return hash_value(value)
        entry = self._entries.get(id(value))
        if entry is not None:
            return entry[1]
        digest = hash_value(value)
        self._entries[id(value)] = (value, digest)
        return digest

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, value: Any) -> bool:
        return id(value) in self._entries


def calculate_hash(value: Any, cache: Optional[HashCache] = None) -> str:
    if cache is None:
        return hash_value(value)
    return cache.hash(value)


def calculate_tolerant_hash(value: Any, notifications: Notifications) -> Optional[str]:
    """Tolerant hash for a deprecated element, or None when it cannot be computed.

    A precomputed hash attached to the node under ``TOLERANT_HASH_KEY`` takes
    precedence. Failures are reported to ``notifications``, never raised.
    """
    if value is None or value is MISSING:
        notifications.error("[Deprecated items] Tolerant hash is not defined")
        return None
    attached = get_annotation(value, TOLERANT_HASH_KEY)
    if attached is not None:
        return attached
    try:
        return tolerant_hash(value)
    except CanonicalizationError as e:
        notifications.error(f"[Deprecated items] Something wrong with tolerant hash: {e}")
        return None
