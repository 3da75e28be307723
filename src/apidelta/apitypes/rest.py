"""REST (OpenAPI) documents."""

import logging
from typing import Any, List, Optional

from apidelta.apitypes.base import (
    ApiBuilder,
    BuildContext,
    DocumentCompareContext,
    build_deprecated_items,
    identities,
    operation_history,
    resolve_api_audience,
    resolve_api_kind,
)
from apidelta.kernel.diff import (
    DIFF_META_KEY,
    DIFFS_AGGREGATED_META_KEY,
    HTTP_METHODS,
    Diff,
    DiffAction,
    JsonPath,
    get_annotation,
    is_path_param_rename,
)
from apidelta.kernel.documents import DocumentComparison, OperationDiffs
from apidelta.kernel.operation import ApiType, DocumentRef, Operation
from apidelta.kernel.operation_id import (
    get_operation_base_path,
    hide_path_param_names,
    remove_first_slash,
    rest_normalized_operation_id,
    rest_operation_id,
)
from apidelta.kernel.tree_diff import DiffOptions, aggregate_diffs_with_rollup, attach_origins, diff_trees


logger = logging.getLogger(__name__)

PATHS = "paths"
SERVERS = "servers"


def _path_key_canonicalizer(path: JsonPath, key: str) -> Optional[str]:
    if path == (PATHS,) and isinstance(key, str):
        return hide_path_param_names(key)
    return None


def copy_with_group_operations_only(document: dict, group: str) -> dict:
    """Document restricted to paths under ``group``, with the group prefix removed.

    Only whole path segments match: group ``/api/v1`` keeps ``/api/v1/pets``
    but not ``/api/v10/pets``.
    """
    prefix = remove_first_slash(group).rstrip("/")
    paths = {}
    for key, value in (document.get(PATHS) or {}).items():
        if not isinstance(key, str):
            continue
        stripped = remove_first_slash(key)
        if stripped == prefix or stripped.startswith(prefix + "/"):
            paths[stripped[len(prefix):] or "/"] = value
    return {**document, PATHS: paths}


def copy_with_empty_path_items(document: dict) -> dict:
    paths = {key: {} for key in (document.get(PATHS) or {}) if isinstance(key, str)}
    return {**document, PATHS: paths}


def align_path_items(previous: dict, current: dict) -> None:
    """Give every path item present on one side only an empty counterpart.

    Path items whose template (parameter names hidden) exists on the other
    side are left alone so the diff reports them as renamed.
    """
    prev_paths = previous.setdefault(PATHS, {})
    curr_paths = current.setdefault(PATHS, {})
    prev_templates = {hide_path_param_names(k) for k in prev_paths if isinstance(k, str)}
    curr_templates = {hide_path_param_names(k) for k in curr_paths if isinstance(k, str)}
    for key in [k for k in prev_paths if isinstance(k, str)]:
        if key not in curr_paths and hide_path_param_names(key) not in curr_templates:
            curr_paths[key] = {}
    for key in [k for k in curr_paths if isinstance(k, str)]:
        if key not in prev_paths and hide_path_param_names(key) not in prev_templates:
            prev_paths[key] = {}


def extract_servers_diffs(merged: dict) -> List[Diff]:
    diffs = []
    own = (get_annotation(merged, DIFF_META_KEY) or {}).get(SERVERS)
    if own is not None:
        diffs.append(own)
    diffs.extend(get_annotation(merged.get(SERVERS), DIFFS_AGGREGATED_META_KEY) or [])
    return diffs


def _describe(operation_path: JsonPath, method: str, path: str):
    def describe(at: JsonPath, value: dict) -> str:
        if at == operation_path:
            return f"[Deprecated] operation {method.upper()} {path}"
        if len(at) >= 2 and at[-2] == "properties":
            return f"[Deprecated] property '{at[-1]}' in operation {method.upper()} {path}"
        if "parameters" in at and isinstance(value.get("name"), str):
            return f"[Deprecated] {value.get('in', '')} parameter '{value['name']}' in operation {method.upper()} {path}".replace("  ", " ")
        return f"[Deprecated] {'/'.join(str(p) for p in at[len(operation_path):])} in operation {method.upper()} {path}"
    return describe


class RestApiBuilder(ApiBuilder):
    api_type = ApiType.REST
    deprecation_rules = True
    supports_groups = True

    def build_operations(self, tree: Any, document: DocumentRef, ctx: BuildContext) -> List[Operation]:
        if not isinstance(tree, dict) or not isinstance(tree.get(PATHS), dict):
            return []
        attach_origins(tree)
        info = tree.get("info")
        operations = []
        seen = set()
        for path, path_item in tree[PATHS].items():
            if not isinstance(path, str) or not isinstance(path_item, dict):
                continue
            for method, data in path_item.items():
                if method not in HTTP_METHODS or not isinstance(data, dict):
                    continue
                base_path = get_operation_base_path(data.get(SERVERS) or path_item.get(SERVERS) or tree.get(SERVERS))
                operation_id = rest_operation_id(base_path, path, method)
                if operation_id in seen:
                    ctx.notifications.warning(f"Duplicated operation with operationId = {operation_id} found")
                seen.add(operation_id)
                operation_path = (PATHS, path, method)
                items = build_deprecated_items(data, operation_path, _describe(operation_path, method, path), ctx)
                operations.append(Operation(
                    operation_id=operation_id,
                    api_type=ApiType.REST,
                    api_kind=resolve_api_kind(data, info),
                    api_audience=resolve_api_audience(info),
                    title=data.get("summary") or data.get("operationId") or f"{method.upper()} {path}",
                    tags=[t for t in data.get("tags") or [] if isinstance(t, str)],
                    metadata={"path": path, "method": method, "base_path": base_path},
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
        # origins are taken before group prefixes are stripped from path keys
        for tree in (previous, current):
            if tree is not None:
                attach_origins(tree)
        if previous is not None and ctx.previous_group:
            previous = copy_with_group_operations_only(previous, ctx.previous_group)
        if current is not None and ctx.current_group:
            current = copy_with_group_operations_only(current, ctx.current_group)
        if previous is None and current is None:
            return DocumentComparison()
        if previous is None:
            previous = copy_with_empty_path_items(current)
        if current is None:
            current = copy_with_empty_path_items(previous)
        previous = {**previous, PATHS: dict(previous.get(PATHS) or {})}
        current = {**current, PATHS: dict(current.get(PATHS) or {})}
        align_path_items(previous, current)

        result = diff_trees(previous, current, DiffOptions(key_canonicalizer=_path_key_canonicalizer))
        if not result.diffs:
            return DocumentComparison(merged=result.merged)
        merged = result.merged
        aggregate_diffs_with_rollup(merged, DIFF_META_KEY, DIFFS_AGGREGATED_META_KEY)

        servers_diffs = extract_servers_diffs(merged)
        paths_meta = get_annotation(merged[PATHS], DIFF_META_KEY) or {}
        operations: List[OperationDiffs] = []
        for path, path_item in merged[PATHS].items():
            if not isinstance(path, str) or not isinstance(path_item, dict):
                continue
            item_meta = get_annotation(path_item, DIFF_META_KEY) or {}
            for method, data in path_item.items():
                if method not in HTTP_METHODS or not isinstance(data, dict):
                    continue
                base_path = get_operation_base_path(
                    data.get(SERVERS) or path_item.get(SERVERS) or merged.get(SERVERS)
                )
                own = item_meta.get(method)
                if own is not None and own.action in (DiffAction.ADD, DiffAction.REMOVE):
                    diffs = [own]
                else:
                    diffs = list(get_annotation(data, DIFFS_AGGREGATED_META_KEY) or [])
                    if own is not None:
                        diffs.insert(0, own)
                    diffs.extend(servers_diffs)
                    rename = paths_meta.get(path)
                    if rename is not None and is_path_param_rename(rename):
                        diffs.append(rename)
                if not diffs:
                    continue
                operations.append(OperationDiffs(
                    identities=identities(
                        rest_operation_id(base_path, path, method),
                        rest_normalized_operation_id(base_path, path, method),
                    ),
                    diffs=diffs,
                ))
        logger.debug("REST document pair: %d diffs, %d changed operations", len(result.diffs), len(operations))
        return DocumentComparison(operations=operations, diffs=result.diffs, merged=merged)
