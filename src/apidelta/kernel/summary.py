"""Comparison results and the counts derived from them."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from apidelta.kernel.aggregate import dedupe_diffs
from apidelta.kernel.diff import DIFF_TYPES, Diff, DiffType, count_by_type
from apidelta.kernel.hash_utils import HashCache
from apidelta.kernel.operation import ApiAudience, ApiKind, ApiType, Operation, OperationPair
from apidelta.kernel.operation_id import group_slug, strip_group_prefix


REVISION_DELIMITER = "@"

ChangeSummary = Dict[DiffType, int]
ImpactedSummary = Dict[DiffType, bool]


@dataclass
class OperationChanges:
    """Classified diffs of one operation pair."""
    api_type: ApiType
    diffs: List[Diff]
    change_summary: ChangeSummary
    impacted_summary: ImpactedSummary
    operation_id: Optional[str] = None
    previous_operation_id: Optional[str] = None
    api_kind: Optional[ApiKind] = None
    previous_api_kind: Optional[ApiKind] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    previous_metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ApiAudienceTransition:
    previous_audience: ApiAudience
    current_audience: ApiAudience
    operations_count: int = 0


@dataclass
class OperationTypeSummary:
    """Aggregates for one API type of a comparison."""
    api_type: ApiType
    changes_summary: ChangeSummary
    number_of_impacted_operations: ChangeSummary
    api_audience_transitions: List[ApiAudienceTransition] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)


@dataclass
class VersionsComparison:
    package_id: str
    version: str
    revision: int
    previous_version: str
    previous_version_revision: int
    previous_version_package_id: str
    operation_types: List[OperationTypeSummary] = field(default_factory=list)
    data: List[OperationChanges] = field(default_factory=list)
    comparison_file_id: Optional[str] = None


def empty_change_summary() -> ChangeSummary:
    return {diff_type: 0 for diff_type in DIFF_TYPES}


def calculate_change_summary(diffs: List[Diff]) -> ChangeSummary:
    return count_by_type(diffs)


def calculate_impacted_summary(summaries: Iterable[ChangeSummary]) -> ImpactedSummary:
    summaries = list(summaries)
    return {t: any(summary[t] > 0 for summary in summaries) for t in DIFF_TYPES}


def calculate_total_impacted_summary(summaries: Iterable[ImpactedSummary]) -> ChangeSummary:
    """Per severity, the number of operations with at least one diff of it."""
    total = empty_change_summary()
    for summary in summaries:
        for diff_type in DIFF_TYPES:
            total[diff_type] += 1 if summary[diff_type] else 0
    return total


def calculate_api_audience_transitions(pairs: Iterable[OperationPair]) -> List[ApiAudienceTransition]:
    """Tally (previous, current) audience pairs over operations whose audience changed."""
    transitions: Dict[Tuple[ApiAudience, ApiAudience], ApiAudienceTransition] = {}
    for pair in pairs:
        if pair.previous is None or pair.current is None:
            continue
        previous, current = pair.previous.api_audience, pair.current.api_audience
        if previous == current:
            continue
        transition = transitions.setdefault(
            (previous, current),
            ApiAudienceTransition(previous_audience=previous, current_audience=current),
        )
        transition.operations_count += 1
    return list(transitions.values())


def split_version_key(version: Optional[str]) -> Tuple[str, int]:
    """``"1.2@3"`` -> ``("1.2", 3)``; no revision means revision 0."""
    if not version:
        return "", 0
    if REVISION_DELIMITER not in version:
        return version, 0
    name, revision = version.split(REVISION_DELIMITER, 1)
    try:
        return name, int(revision)
    except ValueError:
        return name, 0


def operation_tags(operation: Optional[Operation]) -> List[str]:
    if operation is None:
        return []
    return list(operation.tags or operation.metadata.get("tags") or [])


def operation_metadata(operation: Operation) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"title": operation.title, "tags": operation_tags(operation)}
    for key in ("method", "path", "type"):
        if operation.metadata.get(key) is not None:
            metadata[key] = operation.metadata[key]
    return metadata


def _display_id(operation: Operation, group: Optional[str]) -> str:
    slug = group_slug(group)
    if not slug:
        return operation.operation_id
    return strip_group_prefix(operation.operation_id, slug) or operation.operation_id


def create_operation_changes(
    api_type: ApiType,
    diffs: List[Diff],
    pair: OperationPair,
    previous_group: Optional[str] = None,
    current_group: Optional[str] = None,
) -> OperationChanges:
    change_summary = calculate_change_summary(diffs)
    changes = OperationChanges(
        api_type=api_type,
        diffs=list(diffs),
        change_summary=change_summary,
        impacted_summary=calculate_impacted_summary([change_summary]),
    )
    if pair.current is not None:
        changes.operation_id = _display_id(pair.current, current_group)
        changes.api_kind = pair.current.api_kind
        changes.metadata = operation_metadata(pair.current)
    if pair.previous is not None:
        changes.previous_operation_id = _display_id(pair.previous, previous_group)
        changes.previous_api_kind = pair.previous.api_kind
        changes.previous_metadata = operation_metadata(pair.previous)
    return changes


def summarize_operation_type(
    api_type: ApiType,
    changes: List[OperationChanges],
    pairs: Iterable[OperationPair],
    tags: Iterable[str] = (),
    cache: Optional[HashCache] = None,
) -> OperationTypeSummary:
    """Type-level counts; a diff shared by several operations is counted once."""
    all_diffs = [diff for c in changes for diff in c.diffs]
    return OperationTypeSummary(
        api_type=api_type,
        changes_summary=calculate_change_summary(dedupe_diffs(all_diffs, cache)),
        number_of_impacted_operations=calculate_total_impacted_summary(c.impacted_summary for c in changes),
        api_audience_transitions=calculate_api_audience_transitions(pairs),
        tags=sorted(set(tags)),
    )
