"""Reference structural diff primitive.

``diff_trees`` walks two normalized JSON trees and returns a merged tree plus
a flat list of ``Diff`` records. For every changed child, the diff is attached
to the merged parent node under ``options.meta_key`` (a mapping of child key
to diff). ``aggregate_diffs_with_rollup`` then gives every node the union of
its own and its descendants' diffs under ``options.aggregated_key``.

Merged trees contain ``AnnotationKey`` keys and ``AnnotatedList`` nodes; they
are meant for lookups, never for serialization.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from apidelta.kernel.diff import (
    DIFF_META_KEY,
    DIFFS_AGGREGATED_META_KEY,
    MISSING,
    ORIGINS_KEY,
    AnnotatedList,
    AnnotationKey,
    Diff,
    DiffAction,
    DiffType,
    JsonPath,
    get_annotation,
    iter_properties,
    set_annotation,
)


class CompareMode(str, Enum):
    DOCUMENT = "document"
    OPERATION = "operation"  # shared components are not compared


DOCUMENTATION_KEYS = frozenset({"description", "summary", "title", "example", "examples", "externalDocs"})

Classifier = Callable[[DiffAction, JsonPath, Any, Any], DiffType]
KeyCanonicalizer = Callable[[JsonPath, str], Optional[str]]


def default_classifier(action: DiffAction, path: JsonPath, before: Any, after: Any) -> DiffType:
    """Severity of a raw change at ``path`` (the declaration path of the changed key)."""
    key = path[-1] if path else None
    parent = path[-2] if len(path) > 1 else None
    if key == "deprecated":
        if action in (DiffAction.ADD, DiffAction.REPLACE) and after is True:
            return DiffType.DEPRECATED
        return DiffType.NON_BREAKING
    if isinstance(key, str) and (key in DOCUMENTATION_KEYS or key.startswith("x-")):
        return DiffType.ANNOTATION
    if parent == "required" or key == "required":
        return DiffType.BREAKING
    if action == DiffAction.ADD:
        return DiffType.NON_BREAKING
    if action == DiffAction.RENAME:
        return DiffType.NON_BREAKING
    return DiffType.BREAKING


def scope_of(path: JsonPath) -> str:
    if "requestBody" in path or "parameters" in path:
        return "request"
    if "responses" in path:
        return "response"
    if path and path[0] == "components":
        return "components"
    return "global"


def _pointer(path: JsonPath) -> str:
    return "/" + "/".join(str(p).replace("~", "~0").replace("/", "~1") for p in path)


_ACTION_LABELS = {
    DiffAction.ADD: "Added",
    DiffAction.REMOVE: "Removed",
    DiffAction.REPLACE: "Replaced",
    DiffAction.RENAME: "Renamed",
}


@dataclass
class DiffOptions:
    meta_key: AnnotationKey = DIFF_META_KEY
    aggregated_key: AnnotationKey = DIFFS_AGGREGATED_META_KEY
    mode: CompareMode = CompareMode.DOCUMENT
    classifier: Classifier = default_classifier
    key_canonicalizer: Optional[KeyCanonicalizer] = None


@dataclass
class DiffResult:
    merged: Any
    diffs: List[Diff] = field(default_factory=list)


def attach_origins(tree: Any, path: JsonPath = ()) -> Any:
    """Annotate every object with the declaration path of each of its keys.

    Normalizers that inline references record the original locations; for a
    tree read straight from JSON the structural path is the origin.
    """
    if isinstance(tree, dict):
        origins = {}
        for key, value in list(iter_properties(tree)):
            origins[key] = [path + (key,)]
            attach_origins(value, path + (key,))
        tree[ORIGINS_KEY] = origins
    elif isinstance(tree, list):
        for index, value in enumerate(tree):
            attach_origins(value, path + (index,))
    return tree


def resolve_origins(value: Any, key: str) -> Optional[List[JsonPath]]:
    origins = get_annotation(value, ORIGINS_KEY)
    if not isinstance(origins, dict) or not origins.get(key):
        return None
    return [tuple(p) for p in origins[key]]


def _is_container(value: Any) -> bool:
    return isinstance(value, (dict, list))


def _same_scalar(before: Any, after: Any) -> bool:
    if isinstance(before, bool) != isinstance(after, bool):
        return False
    return before == after


def _scalar_key(value: Any) -> Tuple[str, Any]:
    return (type(value).__name__, value)


class _TreeDiffer:
    def __init__(self, options: DiffOptions) -> None:
        self.options = options
        self.diffs: List[Diff] = []

    def _declaration_paths(self, parent: Any, key: Any, path: JsonPath) -> Tuple[JsonPath, ...]:
        if isinstance(parent, dict) and isinstance(key, str):
            origins = resolve_origins(parent, key)
            if origins:
                return tuple(origins)
        return (path + (key,),)

    def _record(
        self,
        action: DiffAction,
        before_parent: Any,
        after_parent: Any,
        before_path: JsonPath,
        after_path: JsonPath,
        before_key: Any,
        after_key: Any,
        before: Any = MISSING,
        after: Any = MISSING,
    ) -> Diff:
        before_paths = () if before_key is None else self._declaration_paths(before_parent, before_key, before_path)
        after_paths = () if after_key is None else self._declaration_paths(after_parent, after_key, after_path)
        location = after_path + (after_key,) if after_key is not None else before_path + (before_key,)
        diff = Diff(
            action=action,
            type=self.options.classifier(action, location, before, after),
            scope=scope_of(location),
            description=f"[{_ACTION_LABELS[action]}] {_pointer(location)}",
            before_declaration_paths=before_paths,
            after_declaration_paths=after_paths,
            before_value=before,
            after_value=after,
            before_key=before_key if action == DiffAction.RENAME else None,
            after_key=after_key if action == DiffAction.RENAME else None,
        )
        self.diffs.append(diff)
        return diff

    def merge(self, before: Any, after: Any, before_path: JsonPath, after_path: JsonPath) -> Any:
        if isinstance(before, dict) and isinstance(after, dict):
            return self._merge_objects(before, after, before_path, after_path)
        return self._merge_lists(before, after, before_path, after_path)

    def _merge_child(self, merged: Any, meta: Dict[Any, Diff], key: Any,
                     before_parent: Any, after_parent: Any,
                     before_path: JsonPath, after_path: JsonPath,
                     before_key: Any, after_key: Any) -> None:
        before = before_parent[before_key]
        after = after_parent[after_key]
        if isinstance(before, dict) and isinstance(after, dict) or \
                isinstance(before, list) and isinstance(after, list):
            merged[key] = self.merge(before, after, before_path + (before_key,), after_path + (after_key,))
        elif not _is_container(before) and not _is_container(after) and _same_scalar(before, after):
            merged[key] = after
        else:
            meta[key] = self._record(DiffAction.REPLACE, before_parent, after_parent,
                                     before_path, after_path, before_key, after_key,
                                     before=before, after=after)
            merged[key] = copy.deepcopy(after)

    def _renames(self, before_only: List[str], after_only: List[str], path: JsonPath) -> Dict[str, str]:
        canonicalize = self.options.key_canonicalizer
        if canonicalize is None:
            return {}
        after_by_canon: Dict[str, str] = {}
        for key in after_only:
            canon = canonicalize(path, key)
            if canon is not None:
                after_by_canon.setdefault(canon, key)
        renames = {}
        for key in before_only:
            canon = canonicalize(path, key)
            if canon is not None and canon in after_by_canon:
                renames[key] = after_by_canon.pop(canon)
        return renames

    def _merge_objects(self, before: dict, after: dict, before_path: JsonPath, after_path: JsonPath) -> dict:
        merged: Dict[Any, Any] = {}
        meta: Dict[Any, Diff] = {}
        before_keys = [k for k, _ in iter_properties(before)]
        after_keys = [k for k, _ in iter_properties(after)]
        if self.options.mode == CompareMode.OPERATION and not before_path and not after_path:
            before_keys = [k for k in before_keys if k != "components"]
            after_keys = [k for k in after_keys if k != "components"]
        after_set = set(after_keys)
        before_set = set(before_keys)
        renames = self._renames(
            [k for k in before_keys if k not in after_set],
            [k for k in after_keys if k not in before_set],
            after_path,
        )
        renamed_targets = set(renames.values())

        for key in before_keys:
            if key in after_set:
                self._merge_child(merged, meta, key, before, after, before_path, after_path, key, key)
            elif key in renames:
                target = renames[key]
                self._merge_child(merged, meta, target, before, after, before_path, after_path, key, target)
                # the rename itself is attached under the new key
                meta[target] = self._record(DiffAction.RENAME, before, after, before_path, after_path,
                                            key, target)
            else:
                meta[key] = self._record(DiffAction.REMOVE, before, after, before_path, after_path,
                                         key, None, before=before[key])
                merged[key] = copy.deepcopy(before[key])
        for key in after_keys:
            if key in before_set or key in renamed_targets:
                continue
            meta[key] = self._record(DiffAction.ADD, before, after, before_path, after_path,
                                     None, key, after=after[key])
            merged[key] = copy.deepcopy(after[key])

        origins = get_annotation(after, ORIGINS_KEY) or get_annotation(before, ORIGINS_KEY)
        if origins is not None:
            merged[ORIGINS_KEY] = origins
        if meta:
            merged[self.options.meta_key] = meta
        return merged

    def _merge_lists(self, before: list, after: list, before_path: JsonPath, after_path: JsonPath) -> AnnotatedList:
        meta: Dict[Any, Diff] = {}
        scalars = not any(_is_container(v) for v in before) and not any(_is_container(v) for v in after)
        if scalars:
            before_items = {_scalar_key(v) for v in before}
            after_items = {_scalar_key(v) for v in after}
            merged = AnnotatedList(after)
            for index, value in enumerate(after):
                if _scalar_key(value) not in before_items:
                    meta[index] = self._record(DiffAction.ADD, before, after, before_path, after_path,
                                               None, index, after=value)
            for index, value in enumerate(before):
                if _scalar_key(value) not in after_items:
                    merged.append(value)
                    meta[len(merged) - 1] = self._record(DiffAction.REMOVE, before, after, before_path,
                                                         after_path, index, None, before=value)
        else:
            merged = AnnotatedList()
            for index in range(max(len(before), len(after))):
                if index < len(before) and index < len(after):
                    merged.append(None)
                    self._merge_child(merged, meta, index, before, after, before_path, after_path, index, index)
                elif index < len(before):
                    merged.append(copy.deepcopy(before[index]))
                    meta[index] = self._record(DiffAction.REMOVE, before, after, before_path, after_path,
                                               index, None, before=before[index])
                else:
                    merged.append(copy.deepcopy(after[index]))
                    meta[index] = self._record(DiffAction.ADD, before, after, before_path, after_path,
                                               None, index, after=after[index])
        if meta:
            set_annotation(merged, self.options.meta_key, meta)
        return merged


def diff_trees(before: Any, after: Any, options: Optional[DiffOptions] = None) -> DiffResult:
    """Compare two normalized trees.

    Both roots must be objects. The merged tree mirrors ``after`` with removed
    children of ``before`` copied back in, so every added, removed or changed
    node is reachable by key lookup.
    """
    options = options or DiffOptions()
    if not isinstance(before, dict) or not isinstance(after, dict):
        raise TypeError("diff_trees expects two object roots")
    differ = _TreeDiffer(options)
    merged = differ.merge(before, after, (), ())
    return DiffResult(merged=merged, diffs=differ.diffs)


def aggregate_diffs_with_rollup(
    merged: Any,
    meta_key: AnnotationKey = DIFF_META_KEY,
    aggregated_key: AnnotationKey = DIFFS_AGGREGATED_META_KEY,
) -> None:
    """Attach to every node the union of its own and its descendants' diffs.

    Mutates ``merged`` in place. Diffs appear once per node, in walk order.
    """
    done: Dict[int, List[Diff]] = {}

    def visit(node: Any) -> List[Diff]:
        if not isinstance(node, (dict, AnnotatedList)):
            return []
        if id(node) in done:
            return done[id(node)]
        done[id(node)] = []
        collected: List[Diff] = []
        seen = set()

        def add(diffs: List[Diff]) -> None:
            for d in diffs:
                if id(d) not in seen:
                    seen.add(id(d))
                    collected.append(d)

        add(list((get_annotation(node, meta_key) or {}).values()))
        for _, child in iter_properties(node):
            add(visit(child))
        set_annotation(node, aggregated_key, collected)
        done[id(node)] = collected
        return collected

    visit(merged)
