"""Published comparison models and the projection into them.

The published vocabulary differs from the internal one in a single place:
``risky`` is reported as ``semi-breaking``. Field names are camelCase on the
wire (``model_dump(by_alias=True)``).
"""

from typing import Callable, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from apidelta.codes import Notifications
from apidelta.kernel.aggregate import dedupe_diffs
from apidelta.kernel.diff import DIFF_TYPES, Diff, DiffAction, DiffType
from apidelta.kernel.hash_utils import HashCache, calculate_hash
from apidelta.kernel.summary import (
    OperationChanges,
    VersionsComparison,
    calculate_change_summary,
    calculate_impacted_summary,
    calculate_total_impacted_summary,
)


SEMI_BREAKING = "semi-breaking"

DTO_SEVERITIES: Dict[DiffType, str] = {
    diff_type: (SEMI_BREAKING if diff_type == DiffType.RISKY else diff_type.value)
    for diff_type in DIFF_TYPES
}

LogError = Callable[[str], None]


def to_dto_severity(diff_type: DiffType) -> str:
    return DTO_SEVERITIES[diff_type]


def to_dto_summary(summary: Dict[DiffType, int]) -> Dict[str, int]:
    return {DTO_SEVERITIES[t]: summary.get(t, 0) for t in DIFF_TYPES}


class _Dto(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ChangeMessage(_Dto):
    """One published change."""
    action: DiffAction
    severity: str  # published severity (semi-breaking instead of risky)
    scope: str = ""
    description: str = ""
    previous_declaration_json_paths: Optional[List[List[Union[str, int]]]] = None
    current_declaration_json_paths: Optional[List[List[Union[str, int]]]] = None
    previous_value_hash: Optional[str] = None
    current_value_hash: Optional[str] = None
    previous_key: Optional[Union[str, int]] = None
    current_key: Optional[Union[str, int]] = None


class ApiAudienceTransitionDto(_Dto):
    previous_audience: str
    current_audience: str
    operations_count: int


class OperationTypeDto(_Dto):
    api_type: str
    changes_summary: Dict[str, int]
    number_of_impacted_operations: Dict[str, int]
    api_audience_transitions: List[ApiAudienceTransitionDto] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class OperationChangesDto(_Dto):
    api_type: str
    operation_id: Optional[str] = None
    previous_operation_id: Optional[str] = None
    api_kind: Optional[str] = None
    previous_api_kind: Optional[str] = None
    metadata: Dict[str, object] = Field(default_factory=dict)
    previous_metadata: Dict[str, object] = Field(default_factory=dict)
    change_summary: Dict[str, int]
    changes: List[ChangeMessage] = Field(default_factory=list)


class VersionsComparisonDto(_Dto):
    package_id: str
    version: str
    revision: int
    previous_version: str
    previous_version_revision: int
    previous_version_package_id: str
    operation_types: List[OperationTypeDto] = Field(default_factory=list)
    comparison_file_id: Optional[str] = None
    data: Optional[List[OperationChangesDto]] = None


def _paths(paths) -> List[List[Union[str, int]]]:
    return [list(p) for p in paths]


def _value_hash(diff: Diff, before: bool, cache: Optional[HashCache]) -> str:
    present = diff.has_before_value if before else diff.has_after_value
    if not present:
        return ""
    return calculate_hash(diff.before_value if before else diff.after_value, cache)


def to_change_message(diff: Diff, log_error: LogError, cache: Optional[HashCache] = None) -> ChangeMessage:
    """Project one diff, reporting (not raising) fields its action requires but lacks."""
    common = dict(
        action=diff.action,
        severity=to_dto_severity(diff.type),
        scope=diff.scope,
        description=diff.description,
    )
    if diff.action == DiffAction.ADD:
        if not diff.has_after_value:
            log_error("Add diff has undefined afterNormalizedValue")
        if not diff.after_declaration_paths:
            log_error("Add diff has empty afterDeclarationPaths")
        return ChangeMessage(
            **common,
            current_declaration_json_paths=_paths(diff.after_declaration_paths),
            current_value_hash=_value_hash(diff, False, cache),
        )
    if diff.action == DiffAction.REMOVE:
        if not diff.has_before_value:
            log_error("Remove diff has undefined beforeNormalizedValue")
        if not diff.before_declaration_paths:
            log_error("Remove diff has empty beforeDeclarationPaths")
        return ChangeMessage(
            **common,
            previous_declaration_json_paths=_paths(diff.before_declaration_paths),
            previous_value_hash=_value_hash(diff, True, cache),
        )
    if diff.action == DiffAction.REPLACE:
        if not diff.has_before_value and not diff.has_after_value:
            log_error("Replace diff has undefined beforeNormalizedValue and afterNormalizedValue")
        if not diff.before_declaration_paths and not diff.after_declaration_paths:
            log_error("Replace diff has empty afterDeclarationPaths and beforeDeclarationPaths")
        return ChangeMessage(
            **common,
            current_declaration_json_paths=_paths(diff.after_declaration_paths),
            previous_declaration_json_paths=_paths(diff.before_declaration_paths),
            current_value_hash=_value_hash(diff, False, cache),
            previous_value_hash=_value_hash(diff, True, cache),
        )
    # rename
    if not diff.before_declaration_paths and not diff.after_declaration_paths:
        log_error("Rename diff has empty afterDeclarationPaths and beforeDeclarationPaths")
    if diff.before_key is None and diff.after_key is None:
        log_error("Rename diff has empty beforeKey and afterKey")
    return ChangeMessage(
        **common,
        current_declaration_json_paths=_paths(diff.after_declaration_paths),
        previous_declaration_json_paths=_paths(diff.before_declaration_paths),
        current_key=diff.after_key,
        previous_key=diff.before_key,
    )


def to_operation_changes_dto(
    changes: OperationChanges,
    log_error: LogError,
    cache: Optional[HashCache] = None,
) -> OperationChangesDto:
    return OperationChangesDto(
        api_type=changes.api_type.value,
        operation_id=changes.operation_id,
        previous_operation_id=changes.previous_operation_id,
        api_kind=changes.api_kind.value if changes.api_kind else None,
        previous_api_kind=changes.previous_api_kind.value if changes.previous_api_kind else None,
        metadata=dict(changes.metadata),
        previous_metadata=dict(changes.previous_metadata),
        change_summary=to_dto_summary(calculate_change_summary(changes.diffs)),
        changes=[to_change_message(diff, log_error, cache) for diff in changes.diffs],
    )


def to_versions_comparison_dto(
    comparison: VersionsComparison,
    notifications: Notifications,
    cache: Optional[HashCache] = None,
) -> VersionsComparisonDto:
    """Published form of a comparison; summaries are recomputed from the diffs."""
    by_type: Dict[str, List[OperationChanges]] = {}
    for changes in comparison.data:
        by_type.setdefault(changes.api_type.value, []).append(changes)

    operation_types = []
    for summary in comparison.operation_types:
        type_changes = by_type.get(summary.api_type.value, [])
        impacted = [calculate_impacted_summary([calculate_change_summary(c.diffs)]) for c in type_changes]
        totals = calculate_change_summary(dedupe_diffs([d for c in type_changes for d in c.diffs], cache))
        operation_types.append(OperationTypeDto(
            api_type=summary.api_type.value,
            changes_summary=to_dto_summary(totals),
            number_of_impacted_operations=to_dto_summary(calculate_total_impacted_summary(impacted)),
            api_audience_transitions=[
                ApiAudienceTransitionDto(
                    previous_audience=t.previous_audience.value,
                    current_audience=t.current_audience.value,
                    operations_count=t.operations_count,
                )
                for t in summary.api_audience_transitions
            ],
            tags=list(summary.tags),
        ))

    data = None
    if comparison.data:
        data = [to_operation_changes_dto(c, notifications.error, cache) for c in comparison.data]
    return VersionsComparisonDto(
        package_id=comparison.package_id,
        version=comparison.version,
        revision=comparison.revision,
        previous_version=comparison.previous_version,
        previous_version_revision=comparison.previous_version_revision,
        previous_version_package_id=comparison.previous_version_package_id,
        operation_types=operation_types,
        comparison_file_id=comparison.comparison_file_id,
        data=data,
    )
