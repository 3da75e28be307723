"""Centralized canonical JSON serialization.

Every content hash and every raw document snapshot goes through
``canonical_dumps`` so that the same tree always produces the same bytes,
whatever order its keys were inserted in.
"""

import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """
    Canonical JSON serialization.

    Rules:
    - Sorted keys
    - Stable separators (",", ":")
    - Non-ASCII kept as UTF-8
    - NaN and Infinity rejected

    Args:
        obj: JSON-compatible object (string keys only)

    Returns:
        Canonical JSON string
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )
