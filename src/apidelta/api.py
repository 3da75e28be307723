"""Public API for apidelta.

High-level entry points over the kernel: build the operations of a version
from its normalized documents, and compare two published versions.

All I/O goes through the async resolvers carried by ``CompareContext``.
Resolvers are awaited one at a time; a resolver returning ``None`` is a soft
failure (reported to ``ctx.notifications``, the side is treated as absent),
while a resolver raising aborts the call.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from apidelta.apitypes import BuildContext, DocumentCompareContext, get_builder
from apidelta.codes import Notifications
from apidelta.config import CompareConfig
from apidelta.contracts import VersionsComparisonDto, to_versions_comparison_dto
from apidelta.kernel.aggregate import attribute_diffs, build_identity_index, merge_attributed
from apidelta.kernel.batches import iter_batches
from apidelta.kernel.bwc import reclassify_operation_diffs
from apidelta.kernel.deprecation import calculate_history_for_deprecated_items
from apidelta.kernel.diff import DiffType
from apidelta.kernel.documents import pair_documents
from apidelta.kernel.hash_utils import HashCache
from apidelta.kernel.operation import (
    ApiType,
    DocumentRef,
    Operation,
    ResolvedVersion,
    VersionRef,
)
from apidelta.kernel.pairing import pair_operations
from apidelta.kernel.summary import (
    OperationChanges,
    OperationTypeSummary,
    VersionsComparison,
    create_operation_changes,
    operation_tags,
    split_version_key,
    summarize_operation_type,
)


logger = logging.getLogger(__name__)

# (version, package id) -> version record
ResolveVersion = Callable[[str, str], Awaitable[Optional[ResolvedVersion]]]
# (api type, version, package id, operation ids or None for all) -> operations
ResolveOperations = Callable[[ApiType, str, str, Optional[List[str]]], Awaitable[Optional[List[Operation]]]]
# (api type, version, package id, operation ids) -> deprecation records
ResolveDeprecated = Callable[[ApiType, str, str, List[str]], Awaitable[Optional[List[Operation]]]]
# (version, package id, document slug) -> normalized document as JSON bytes
ResolveRawDocument = Callable[[str, str, str], Awaitable[Optional[bytes]]]


@dataclass
class CompareContext:
    """Collaborators and per-run state of one build or comparison.

    The hash cache is keyed by object identity and must not outlive the
    documents it was filled from; create a new context per run.
    """
    resolve_version: ResolveVersion
    resolve_operations: ResolveOperations
    resolve_deprecated: ResolveDeprecated
    resolve_raw_document: ResolveRawDocument
    config: CompareConfig = field(default_factory=CompareConfig)
    notifications: Notifications = field(default_factory=Notifications)
    cache: HashCache = field(default_factory=HashCache)


async def _resolve_version(ref: Optional[VersionRef], ctx: CompareContext) -> Optional[ResolvedVersion]:
    if ref is None:
        return None
    resolved = await ctx.resolve_version(ref.version, ref.package_id)
    if resolved is None:
        ctx.notifications.error(f"Cannot resolve version {ref.version} of package {ref.package_id}")
        return ResolvedVersion(version=ref.version, package_id=ref.package_id)
    return resolved


async def _resolve_operations(
    api_type: ApiType,
    version: Optional[ResolvedVersion],
    ctx: CompareContext,
) -> List[Operation]:
    if version is None:
        return []
    operations = await ctx.resolve_operations(api_type, version.version, version.package_id, None)
    if operations is None:
        ctx.notifications.error(
            f"Cannot get {api_type.value} operations for package {version.package_id} and version {version.version}"
        )
        return []
    return list(operations)


async def _load_document(
    version: Optional[ResolvedVersion],
    document: Optional[DocumentRef],
    ctx: CompareContext,
) -> Optional[dict]:
    if version is None or document is None:
        return None
    raw = await ctx.resolve_raw_document(version.version, version.package_id, document.slug)
    if raw is None:
        ctx.notifications.error(
            f"Cannot get document {document.slug} for package {version.package_id} and version {version.version}"
        )
        return None
    tree = json.loads(raw)
    if not isinstance(tree, dict):
        ctx.notifications.error(f"Document {document.slug} of version {version.version} is not a JSON object")
        return None
    return tree


def _api_types(*versions: Optional[ResolvedVersion]) -> List[ApiType]:
    present: Set[ApiType] = set()
    for version in versions:
        if version is not None:
            present.update(version.api_types)
    return [api_type for api_type in ApiType if api_type in present]


async def _resolve_snapshots(
    api_type: ApiType,
    previous: ResolvedVersion,
    operation_ids: List[str],
    ctx: CompareContext,
) -> Dict[str, Operation]:
    """Previous-version deprecation records for ``operation_ids``, fetched in batches."""

    async def fetch(chunk: List[str]) -> Optional[List[Operation]]:
        return await ctx.resolve_deprecated(api_type, previous.version, previous.package_id, chunk)

    snapshots: Dict[str, Operation] = {}
    async for chunk, resolved in iter_batches(operation_ids, fetch, ctx.config.batch_size):
        if resolved is None:
            ctx.notifications.error(
                f"Cannot get deprecated operations for package {previous.package_id} "
                f"and version {previous.version} ({len(chunk)} operations)"
            )
            continue
        for operation in resolved:
            snapshots.setdefault(operation.operation_id, operation)
    return snapshots


async def compare_api_type(
    api_type: ApiType,
    previous: Optional[ResolvedVersion],
    current: Optional[ResolvedVersion],
    ctx: CompareContext,
) -> Tuple[OperationTypeSummary, List[OperationChanges]]:
    """Classified changes of every operation of one API type."""
    builder = get_builder(api_type)
    groups: Tuple[Optional[str], Optional[str]] = (None, None)
    if builder.supports_groups and ctx.config.prefix_mode:
        groups = (ctx.config.previous_group, ctx.config.current_group)

    previous_operations = await _resolve_operations(api_type, previous, ctx)
    current_operations = await _resolve_operations(api_type, current, ctx)
    pairs = pair_operations(previous_operations, current_operations, *groups)
    document_pairs = pair_documents(pairs)
    index = build_identity_index(pairs)
    logger.debug(
        "%s: %d operation pairs over %d document pairs", api_type.value, len(pairs), len(document_pairs)
    )

    document_ctx = DocumentCompareContext(
        notifications=ctx.notifications,
        cache=ctx.cache,
        previous_group=groups[0],
        current_group=groups[1],
    )
    attributed = []
    merged_trees: Dict[str, Any] = {}
    for document_pair in document_pairs:
        previous_document = await _load_document(previous, document_pair.previous, ctx)
        current_document = await _load_document(current, document_pair.current, ctx)
        comparison = builder.compare_documents(previous_document, current_document, document_ctx)
        attributed.append(attribute_diffs(document_pair, comparison, index))
        for key in document_pair.operation_keys:
            merged_trees[key] = comparison.merged
    diffs_by_key = merge_attributed(attributed, ctx.cache)

    snapshots: Dict[str, Operation] = {}
    if builder.deprecation_rules and previous is not None:
        with_breaking = [
            pairs[key].previous.operation_id
            for key, diffs in diffs_by_key.items()
            if pairs[key].previous is not None and any(d.type == DiffType.BREAKING for d in diffs)
        ]
        if with_breaking:
            snapshots = await _resolve_snapshots(api_type, previous, with_breaking, ctx)

    changes: List[OperationChanges] = []
    tags: Set[str] = set()
    for key, pair in pairs.items():
        diffs = diffs_by_key.get(key)
        if not diffs:
            continue
        diffs = reclassify_operation_diffs(
            diffs,
            pair.previous,
            pair.current,
            merged=merged_trees.get(key),
            snapshot=snapshots.get(pair.previous.operation_id) if pair.previous is not None else None,
            notifications=ctx.notifications,
            cache=ctx.cache,
            rest=builder.deprecation_rules,
        )
        changes.append(create_operation_changes(api_type, diffs, pair, *groups))
        tags.update(operation_tags(pair.current if pair.current is not None else pair.previous))

    summary = summarize_operation_type(api_type, changes, pairs.values(), tags, ctx.cache)
    return summary, changes


async def compare_versions(
    previous: Optional[VersionRef],
    current: VersionRef,
    ctx: CompareContext,
) -> VersionsComparison:
    """Compare two versions; ``previous=None`` reports every operation as added."""
    previous_version = await _resolve_version(previous, ctx)
    current_version = await _resolve_version(current, ctx)

    operation_types: List[OperationTypeSummary] = []
    data: List[OperationChanges] = []
    for api_type in _api_types(previous_version, current_version):
        summary, changes = await compare_api_type(api_type, previous_version, current_version, ctx)
        operation_types.append(summary)
        data.extend(changes)

    version, revision = split_version_key(current_version.version if current_version else "")
    prev_name, prev_revision = split_version_key(previous_version.version if previous_version else "")
    comparison_file_id = None
    if data:
        parts = [previous.version, previous.package_id] if previous is not None else []
        parts += [current.version, current.package_id]
        comparison_file_id = "_".join(p for p in parts if p)

    logger.info(
        "Compared %s with %s: %d changed operations",
        previous.version if previous is not None else "nothing",
        current.version,
        len(data),
    )
    return VersionsComparison(
        package_id=current_version.package_id if current_version else "",
        version=version,
        revision=revision,
        previous_version=prev_name,
        previous_version_revision=prev_revision,
        previous_version_package_id=previous_version.package_id if previous_version else "",
        operation_types=operation_types,
        data=data,
        comparison_file_id=comparison_file_id,
    )


async def compare_versions_dto(
    previous: Optional[VersionRef],
    current: VersionRef,
    ctx: CompareContext,
) -> VersionsComparisonDto:
    comparison = await compare_versions(previous, current, ctx)
    return to_versions_comparison_dto(comparison, ctx.notifications, ctx.cache)


async def build_operations(
    documents: List[Tuple[DocumentRef, Any]],
    version: str,
    ctx: CompareContext,
    previous: Optional[VersionRef] = None,
) -> List[Operation]:
    """
    Operations declared by the normalized ``documents`` of the version being
    built, with deprecation history carried over from ``previous``.

    Each tree is annotated in place with declaration origins.
    """
    build_ctx = BuildContext(
        version=version,
        status=ctx.config.status,
        notifications=ctx.notifications,
        cache=ctx.cache,
    )
    operations: List[Operation] = []
    for document, tree in documents:
        operations.extend(get_builder(document.api_type).build_operations(tree, document, build_ctx))

    if previous is not None:
        by_type: Dict[ApiType, List[Operation]] = {}
        for operation in operations:
            by_type.setdefault(operation.api_type, []).append(operation)
        for api_type, typed in by_type.items():

            async def fetch(chunk: List[str], api_type: ApiType = api_type) -> Optional[List[Operation]]:
                return await ctx.resolve_deprecated(api_type, previous.version, previous.package_id, chunk)

            await calculate_history_for_deprecated_items(typed, fetch, ctx.notifications, ctx.config.batch_size)
    logger.debug("Built %d operations from %d documents", len(operations), len(documents))
    return operations

