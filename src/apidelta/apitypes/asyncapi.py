"""AsyncAPI 3 documents.

An operation is identified by its ``action`` and the channel it refers to.
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
from apidelta.kernel.operation_id import asyncapi_operation_id
from apidelta.kernel.tree_diff import DiffOptions, aggregate_diffs_with_rollup, attach_origins, diff_trees


logger = logging.getLogger(__name__)

OPERATIONS = "operations"
CHANNEL_REF_PREFIX = "#/channels/"


def channel_name(operation_key: str, data: Any) -> str:
    """Channel of an operation: the ``#/channels/<name>`` reference, else the operation key."""
    if isinstance(data, dict):
        channel = data.get("channel")
        if isinstance(channel, dict) and isinstance(channel.get("$ref"), str):
            ref = channel["$ref"]
            if ref.startswith(CHANNEL_REF_PREFIX):
                return ref[len(CHANNEL_REF_PREFIX):].replace("~1", "/").replace("~0", "~")
        elif isinstance(channel, str):
            return channel
    return operation_key


def operation_identity(operation_key: str, data: Any) -> Optional[str]:
    if not isinstance(data, dict) or not isinstance(data.get("action"), str):
        return None
    return asyncapi_operation_id(data["action"], channel_name(operation_key, data))


class AsyncApiBuilder(ApiBuilder):
    api_type = ApiType.ASYNCAPI

    def build_operations(self, tree: Any, document: DocumentRef, ctx: BuildContext) -> List[Operation]:
        if not isinstance(tree, dict) or not isinstance(tree.get(OPERATIONS), dict):
            return []
        attach_origins(tree)
        operations = []
        for key, data in tree[OPERATIONS].items():
            if not isinstance(key, str):
                continue
            operation_id = operation_identity(key, data)
            if operation_id is None:
                ctx.notifications.warning(f"AsyncAPI operation {key} has no action")
                continue
            action, channel = data["action"], channel_name(key, data)
            operation_path = (OPERATIONS, key)
            items = build_deprecated_items(
                data,
                operation_path,
                lambda at, value: f"[Deprecated] {'/'.join(str(p) for p in at)} in {action} {channel}",
                ctx,
            )
            operations.append(Operation(
                operation_id=operation_id,
                api_type=ApiType.ASYNCAPI,
                api_kind=resolve_api_kind(data, tree.get("info")),
                title=data.get("title") or data.get("summary") or key,
                metadata={"action": action, "channel": channel},
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
        if previous is None:
            previous = empty_sections(current, (OPERATIONS,))
        if current is None:
            current = empty_sections(previous, (OPERATIONS,))
        previous = {**previous, OPERATIONS: previous.get(OPERATIONS) or {}}
        current = {**current, OPERATIONS: current.get(OPERATIONS) or {}}

        result = diff_trees(previous, current, DiffOptions())
        if not result.diffs:
            return DocumentComparison(merged=result.merged)
        merged = result.merged
        aggregate_diffs_with_rollup(merged, DIFF_META_KEY, DIFFS_AGGREGATED_META_KEY)

        node = merged[OPERATIONS]
        meta = get_annotation(node, DIFF_META_KEY) or {}
        operations = []
        for key, data in node.items():
            if not isinstance(key, str):
                continue
            operation_id = operation_identity(key, data)
            if operation_id is None:
                continue
            own = meta.get(key)
            if own is not None and own.action in (DiffAction.ADD, DiffAction.REMOVE):
                diffs = [own]
            else:
                diffs = list(get_annotation(data, DIFFS_AGGREGATED_META_KEY) or [])
            if diffs:
                operations.append(OperationDiffs(identities=identities(operation_id), diffs=diffs))
        logger.debug("AsyncAPI document pair: %d diffs, %d changed operations", len(result.diffs), len(operations))
        return DocumentComparison(operations=operations, diffs=result.diffs, merged=merged)
