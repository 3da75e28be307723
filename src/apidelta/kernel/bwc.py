"""Backward-compatibility reclassification of breaking diffs.

Rules, in the order they are applied to one operation pair:

1. REST deprecation depth: removing a whole operation, or removing a value
   that was already deprecated, is risky rather than breaking once the
   element has been deprecated for more than one prior release.
2. REST required correlation: when a property removal is not breaking, the
   matching removal of its name from the sibling ``required`` list is risky.
3. API kind: every breaking diff of a pair where either side is declared
   ``no-bwc`` is risky.

Reclassification never edits a ``Diff``; it returns a new list.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from apidelta.codes import Notifications
from apidelta.kernel.deprecation import are_declaration_paths_equal
from apidelta.kernel.diff import (
    DIFF_META_KEY,
    AnnotatedList,
    AnnotationKey,
    Diff,
    DiffAction,
    DiffType,
    get_annotation,
    is_operation_remove,
    iter_properties,
)
from apidelta.kernel.hash_utils import HashCache, calculate_hash
from apidelta.kernel.operation import ApiKind, Operation
from apidelta.kernel.tree_diff import resolve_origins


logger = logging.getLogger(__name__)

DEPRECATED_PROPERTY = "deprecated"
REQUIRED_PROPERTY = "required"


class _Reclassification:
    """Current version of every diff of one pair, keyed by its origin."""

    def __init__(self, diffs: List[Diff]) -> None:
        self.order = [id(d.origin) for d in diffs]
        self.current: Dict[int, Diff] = {id(d.origin): d for d in diffs}

    def get(self, diff: Diff) -> Optional[Diff]:
        return self.current.get(id(diff.origin))

    def set_type(self, diff: Diff, new_type: DiffType) -> None:
        key = id(diff.origin)
        if key in self.current:
            self.current[key] = self.current[key].with_type(new_type)

    def result(self) -> List[Diff]:
        return [self.current[key] for key in self.order]


def apply_api_kind_rule(
    diffs: List[Diff],
    previous: Optional[Operation],
    current: Optional[Operation],
) -> List[Diff]:
    """Breaking diffs become risky when either side is declared ``no-bwc``."""
    no_bwc = any(op is not None and op.api_kind == ApiKind.NO_BWC for op in (previous, current))
    if not no_bwc:
        return list(diffs)
    return [d.with_type(DiffType.RISKY) if d.type == DiffType.BREAKING else d for d in diffs]


def find_required_removed_properties(
    merged: Any,
    removed: List[Diff],
    meta_key: AnnotationKey = DIFF_META_KEY,
) -> List[Tuple[str, Diff, Optional[Diff]]]:
    """
    Find property removals together with the removal of the same name from
    the sibling ``required`` list.

    Returns (property name, property diff, required diff or None) triples.
    """
    removed_ids = {id(d) for d in removed}
    found: List[Tuple[str, Diff, Optional[Diff]]] = []
    visited = set()

    def crawl(value: Any, parent: Any) -> None:
        if not isinstance(value, dict) or id(value) in visited:
            return
        visited.add(id(value))
        meta = get_annotation(value, meta_key) or {}
        matched = [(name, d) for name, d in meta.items() if id(d) in removed_ids]
        if matched and isinstance(parent, dict):
            required = parent.get(REQUIRED_PROPERTY)
            if isinstance(required, AnnotatedList):
                required_diffs = list((get_annotation(required, meta_key) or {}).values())
                for name, prop_diff in matched:
                    required_diff = next(
                        (rd for rd in required_diffs
                         if rd.action in (DiffAction.REMOVE, DiffAction.REPLACE) and rd.before_value == name),
                        None,
                    )
                    found.append((name, prop_diff, required_diff))
        for _, child in iter_properties(value):
            if isinstance(child, list):
                for item in child:
                    crawl(item, value)
            else:
                crawl(child, value)

    crawl(merged, None)
    return found


def _deprecation_depth_rules(
    state: _Reclassification,
    breaking: List[Diff],
    snapshot: Operation,
    notifications: Notifications,
    cache: Optional[HashCache],
) -> None:
    depth = len(snapshot.deprecated_in_previous_versions)
    for diff in breaking:
        if is_operation_remove(diff) and depth > 1:
            state.set_type(diff, DiffType.RISKY)
            continue
        if diff.action != DiffAction.REMOVE:
            continue
        value = diff.before_value
        if not isinstance(value, dict):
            notifications.error("[Risky validation] Something wrong with beforeNormalizedValue from diff")
            continue
        if not value.get(DEPRECATED_PROPERTY):
            continue
        origins = resolve_origins(value, DEPRECATED_PROPERTY)
        if not origins:
            notifications.error("[Risky validation] Something wrong with origins")
            continue
        before_hash = calculate_hash(value, cache)
        item = next(
            (item for item in snapshot.deprecated_items
             if item.hash == before_hash
             and are_declaration_paths_equal(item.declaration_json_paths, origins)),
            None,
        )
        if item is not None and len(item.deprecated_in_previous_versions) > 1:
            state.set_type(diff, DiffType.RISKY)


def reclassify_rest_diffs(
    diffs: List[Diff],
    merged: Any,
    snapshot: Optional[Operation],
    notifications: Notifications,
    cache: Optional[HashCache] = None,
) -> List[Diff]:
    """
    Apply the REST-only rules to one operation pair.

    ``snapshot`` is the previous version's deprecation record of the
    previous operation; without it only the required rule can apply.
    """
    breaking = [d for d in diffs if d.type == DiffType.BREAKING]
    if not breaking:
        return list(diffs)
    state = _Reclassification(diffs)
    if snapshot is not None:
        _deprecation_depth_rules(state, breaking, snapshot, notifications, cache)

    removed = [d for d in diffs if d.action == DiffAction.REMOVE and isinstance(d.before_value, dict)]
    if removed and merged is not None:
        for name, prop_diff, required_diff in find_required_removed_properties(merged, removed):
            if required_diff is None:
                continue
            prop_now = state.get(prop_diff)
            required_now = state.get(required_diff)
            if prop_now is None or required_now is None:
                continue
            if prop_now.type in (DiffType.NON_BREAKING, DiffType.RISKY) and required_now.type == DiffType.BREAKING:
                logger.debug("Removal of required property %s is risky", name)
                state.set_type(required_diff, DiffType.RISKY)
    return state.result()


def reclassify_operation_diffs(
    diffs: List[Diff],
    previous: Optional[Operation],
    current: Optional[Operation],
    merged: Any = None,
    snapshot: Optional[Operation] = None,
    notifications: Optional[Notifications] = None,
    cache: Optional[HashCache] = None,
    rest: bool = False,
) -> List[Diff]:
    """All BWC rules for one operation pair, REST rules first."""
    if rest:
        diffs = reclassify_rest_diffs(diffs, merged, snapshot, notifications or Notifications(), cache)
    return apply_api_kind_rule(diffs, previous, current)
