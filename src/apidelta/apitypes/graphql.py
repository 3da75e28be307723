"""GraphQL documents (normalized GraphAPI form).

Operations live in the ``queries``, ``mutations`` and ``subscriptions``
sections, keyed by field name. Shared ``components`` are inlined by
normalization and are not compared.
"""

import logging
from typing import Any, List, Optional

from apidelta.apitypes.base import (
    ApiBuilder,
    BuildContext,
    DocumentCompareContext,
    build_deprecated_items,
    empty_sections,
    identities,
    operation_history,
    resolve_api_kind,
)
from apidelta.kernel.diff import DIFF_META_KEY, DIFFS_AGGREGATED_META_KEY, DiffAction, get_annotation
from apidelta.kernel.documents import DocumentComparison, OperationDiffs
from apidelta.kernel.operation import ApiType, DocumentRef, Operation
from apidelta.kernel.operation_id import GRAPHQL_SECTIONS, graphql_operation_id
from apidelta.kernel.tree_diff import CompareMode, DiffOptions, aggregate_diffs_with_rollup, attach_origins, diff_trees


logger = logging.getLogger(__name__)

SECTIONS = tuple(GRAPHQL_SECTIONS)


def remove_components(document: dict) -> dict:
    return {k: v for k, v in document.items() if k != "components"}


def _describe(operation_path, kind: str, name: str):
    def describe(at, value) -> str:
        if at == operation_path:
            return f"[Deprecated] {kind} '{name}'"
        return f"[Deprecated] {'/'.join(str(p) for p in at[len(operation_path):])} in {kind} '{name}'"
    return describe


class GraphQLApiBuilder(ApiBuilder):
    api_type = ApiType.GRAPHQL

    def build_operations(self, tree: Any, document: DocumentRef, ctx: BuildContext) -> List[Operation]:
        if not isinstance(tree, dict):
            return []
        attach_origins(tree)
        operations = []
        for section, kind in GRAPHQL_SECTIONS.items():
            for name, data in (tree.get(section) or {}).items():
                if not isinstance(name, str) or not isinstance(data, dict):
                    continue
                operation_path = (section, name)
                items = build_deprecated_items(data, operation_path, _describe(operation_path, kind, name), ctx)
                operations.append(Operation(
                    operation_id=graphql_operation_id(kind, name),
                    api_type=ApiType.GRAPHQL,
                    api_kind=resolve_api_kind(data, tree),
                    title=data.get("title") or name,
                    metadata={"type": kind, "method": name},
                    deprecated=data.get("deprecated") is True,
                    deprecated_items=items,
                    deprecated_in_previous_versions=operation_history(items),
                    document=document,
                ))
        return operations

    def compare_documents(
        self,
        previous: Optional[dict],
        current: Optional[dict],
        ctx: DocumentCompareContext,
    ) -> DocumentComparison:
        if previous is None and current is None:
            return DocumentComparison()
        previous = remove_components(previous) if previous is not None else None
        current = remove_components(current) if current is not None else None
        if previous is None:
            previous = empty_sections(current, SECTIONS)
        if current is None:
            current = empty_sections(previous, SECTIONS)
        for section in SECTIONS:
            if section in previous or section in current:
                previous.setdefault(section, {})
                current.setdefault(section, {})

        result = diff_trees(previous, current, DiffOptions(mode=CompareMode.OPERATION))
        if not result.diffs:
            return DocumentComparison(merged=result.merged)
        merged = result.merged
        aggregate_diffs_with_rollup(merged, DIFF_META_KEY, DIFFS_AGGREGATED_META_KEY)

        operations = []
        for section, kind in GRAPHQL_SECTIONS.items():
            node = merged.get(section)
            if not isinstance(node, dict):
                continue
            meta = get_annotation(node, DIFF_META_KEY) or {}
            for name, data in node.items():
                if not isinstance(name, str):
                    continue
                own = meta.get(name)
                if own is not None and own.action in (DiffAction.ADD, DiffAction.REMOVE):
                    diffs = [own]
                else:
                    diffs = list(get_annotation(data, DIFFS_AGGREGATED_META_KEY) or [])
                if diffs:
                    operations.append(OperationDiffs(identities=identities(graphql_operation_id(kind, name)), diffs=diffs))
        logger.debug("GraphQL document pair: %d diffs, %d changed operations", len(result.diffs), len(operations))
        return DocumentComparison(operations=operations, diffs=result.diffs, merged=merged)
