"""Diff records produced by the structural diff primitive.

A ``Diff`` is an immutable value. Reclassification never edits a diff in
place: it produces a new record via ``with_type`` that remembers the record it
was derived from, so the same logical change can be recognised after several
rewrites.

Merged trees returned by the diff primitive carry per-node metadata under
``AnnotationKey`` keys. These keys are never strings, so they cannot collide
with document properties and are skipped by hashing and by property walks.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union


PathSegment = Union[str, int]
JsonPath = Tuple[PathSegment, ...]


class AnnotationKey:
    """Non-string dictionary key used to attach metadata to tree nodes."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"AnnotationKey({self.name!r})"

    # Keys must survive copies of annotated trees unchanged.
    def __copy__(self) -> "AnnotationKey":
        return self

    def __deepcopy__(self, memo: dict) -> "AnnotationKey":
        return self


DIFF_META_KEY = AnnotationKey("diff-meta")
DIFFS_AGGREGATED_META_KEY = AnnotationKey("diffs-aggregated")
ORIGINS_KEY = AnnotationKey("origins")
TOLERANT_HASH_KEY = AnnotationKey("tolerant-hash")


class AnnotatedList(list):
    """List node of a merged tree; lists cannot hold keyed metadata natively."""

    def __init__(self, *args: Any) -> None:
        super().__init__(*args)
        self.annotations: Dict[AnnotationKey, Any] = {}


def get_annotation(node: Any, key: AnnotationKey) -> Any:
    if isinstance(node, AnnotatedList):
        return node.annotations.get(key)
    if isinstance(node, dict):
        return node.get(key)
    return None


def set_annotation(node: Any, key: AnnotationKey, value: Any) -> None:
    if isinstance(node, AnnotatedList):
        node.annotations[key] = value
    elif isinstance(node, dict):
        node[key] = value
    else:
        raise TypeError(f"Cannot annotate {type(node).__name__} node")


def iter_properties(node: Any) -> Iterator[Tuple[PathSegment, Any]]:
    """Yield (key, child) pairs of a tree node, skipping annotations."""
    if isinstance(node, dict):
        for key, value in node.items():
            if not isinstance(key, AnnotationKey):
                yield key, value
    elif isinstance(node, list):
        yield from enumerate(node)


class DiffAction(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"
    RENAME = "rename"


class DiffType(str, Enum):
    """Internal severity vocabulary."""
    BREAKING = "breaking"
    NON_BREAKING = "non-breaking"
    RISKY = "risky"
    DEPRECATED = "deprecated"
    ANNOTATION = "annotation"
    UNCLASSIFIED = "unclassified"


DIFF_TYPES: Tuple[DiffType, ...] = tuple(DiffType)


class _Missing:
    """Marker for an absent before/after value (distinct from JSON null)."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


# eq=False: diffs are compared and deduplicated by identity or by diff id,
# never by structural equality of their payloads.
@dataclass(frozen=True, eq=False)
class Diff:
    """One atomic change between two normalized values."""
    action: DiffAction
    type: DiffType
    scope: str = ""
    description: str = ""
    before_declaration_paths: Tuple[JsonPath, ...] = ()
    after_declaration_paths: Tuple[JsonPath, ...] = ()
    before_value: Any = MISSING
    after_value: Any = MISSING
    before_key: Optional[PathSegment] = None
    after_key: Optional[PathSegment] = None
    derived_from: Optional["Diff"] = field(default=None, repr=False)

    @property
    def origin(self) -> "Diff":
        """The record this diff was first produced as, before any rewrite."""
        return self.derived_from.origin if self.derived_from is not None else self

    @property
    def has_before_value(self) -> bool:
        return self.before_value is not MISSING

    @property
    def has_after_value(self) -> bool:
        return self.after_value is not MISSING

    def with_type(self, new_type: DiffType) -> "Diff":
        if new_type == self.type:
            return self
        return replace(self, type=new_type, derived_from=self)


HTTP_METHODS = frozenset({"get", "put", "post", "delete", "options", "head", "patch", "trace"})


def _matches(path: Sequence[PathSegment], template: Sequence[Optional[PathSegment]]) -> bool:
    # None in a template matches any single segment
    if len(path) != len(template):
        return False
    return all(t is None or p == t for p, t in zip(path, template))


def is_operation_remove(diff: Diff) -> bool:
    """True when the diff removes a whole REST operation or path item."""
    if diff.action != DiffAction.REMOVE:
        return False
    for path in diff.before_declaration_paths:
        if _matches(path, ("paths", None)):
            return True
        if _matches(path, ("paths", None, None)) and str(path[2]).lower() in HTTP_METHODS:
            return True
    return False


def is_path_param_rename(diff: Diff) -> bool:
    return diff.action == DiffAction.RENAME and any(
        _matches(path, ("paths", None)) for path in diff.before_declaration_paths
    )


def count_by_type(diffs: List[Diff]) -> Dict[DiffType, int]:
    counts = {diff_type: 0 for diff_type in DIFF_TYPES}
    for diff in diffs:
        counts[diff.type] += 1
    return counts
