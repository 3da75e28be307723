"""Common interface of the API-type builders."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from apidelta.codes import Notifications
from apidelta.config import VersionStatus
from apidelta.kernel.deprecation import new_deprecate_item
from apidelta.kernel.diff import JsonPath, iter_properties
from apidelta.kernel.documents import DocumentComparison
from apidelta.kernel.hash_utils import HashCache, calculate_hash, calculate_tolerant_hash
from apidelta.kernel.operation import ApiAudience, ApiKind, ApiType, DeprecateItem, DocumentRef, Operation
from apidelta.kernel.summary import split_version_key
from apidelta.kernel.tree_diff import resolve_origins


API_KIND_PROPERTY = "x-api-kind"
API_AUDIENCE_PROPERTY = "x-api-audience"
DEPRECATED_META_PROPERTY = "x-deprecated-meta"

# Subtrees that never declare deprecated elements.
_SKIP_KEYS = frozenset({"example", "examples", "externalDocs"})


@dataclass
class DocumentCompareContext:
    """Per-run settings a builder needs while diffing one document pair."""
    notifications: Notifications = field(default_factory=Notifications)
    cache: Optional[HashCache] = None
    previous_group: Optional[str] = None
    current_group: Optional[str] = None


@dataclass
class BuildContext:
    version: str = ""
    status: VersionStatus = VersionStatus.NONE
    notifications: Notifications = field(default_factory=Notifications)
    cache: Optional[HashCache] = None


def resolve_api_kind(*candidates: Any) -> ApiKind:
    """First valid ``x-api-kind`` found on the given objects, else ``bwc``."""
    for candidate in candidates:
        if isinstance(candidate, dict):
            value = candidate.get(API_KIND_PROPERTY)
            if isinstance(value, str) and value.lower() in {k.value for k in ApiKind}:
                return ApiKind(value.lower())
    return ApiKind.BWC


def resolve_api_audience(info: Any) -> ApiAudience:
    if not isinstance(info, dict) or API_AUDIENCE_PROPERTY not in info:
        return ApiAudience.EXTERNAL
    value = info[API_AUDIENCE_PROPERTY]
    if value in (ApiAudience.INTERNAL.value, ApiAudience.EXTERNAL.value):
        return ApiAudience(value)
    return ApiAudience.UNKNOWN


def find_deprecated_values(node: Any, path: JsonPath) -> List[Tuple[JsonPath, dict]]:
    """(path, object) for every object under ``node`` flagged ``deprecated: true``."""
    found: List[Tuple[JsonPath, dict]] = []

    def walk(value: Any, at: JsonPath) -> None:
        if isinstance(value, dict):
            if value.get("deprecated") is True:
                found.append((at, value))
            for key, child in iter_properties(value):
                if key not in _SKIP_KEYS:
                    walk(child, at + (key,))
        elif isinstance(value, list):
            for index, child in enumerate(value):
                walk(child, at + (index,))

    walk(node, path)
    return found


def build_deprecated_items(
    operation_data: dict,
    operation_path: JsonPath,
    describe: Callable[[JsonPath, dict], str],
    ctx: BuildContext,
) -> List[DeprecateItem]:
    """Deprecated items of one operation; the operation itself comes first when flagged."""
    version, _ = split_version_key(ctx.version)
    items = []
    for path, value in find_deprecated_values(operation_data, operation_path):
        is_operation = path == operation_path
        paths = resolve_origins(value, "deprecated") or [path + ("deprecated",)]
        items.append(new_deprecate_item(
            declaration_json_paths=[list(p) for p in paths],
            description=describe(path, value),
            version=version,
            status=ctx.status,
            is_operation=is_operation,
            deprecated_info=value.get(DEPRECATED_META_PROPERTY) if isinstance(value.get(DEPRECATED_META_PROPERTY), str) else None,
            hash=None if is_operation else calculate_hash(value, ctx.cache),
            tolerant_hash=None if is_operation else calculate_tolerant_hash(value, ctx.notifications),
        ))
    return items


def operation_history(items: List[DeprecateItem]) -> List[str]:
    operation_item = next((item for item in items if item.is_operation), None)
    return list(operation_item.deprecated_in_previous_versions) if operation_item else []


class ApiBuilder:
    """One API dialect. Subclasses override what their dialect supports."""

    api_type: ApiType = ApiType.UNKNOWN
    # REST-only BWC rules (deprecation depth, required correlation)
    deprecation_rules: bool = False
    # whether prefix-group changelog mode applies to this dialect
    supports_groups: bool = False

    def build_operations(self, tree: Any, document: DocumentRef, ctx: BuildContext) -> List[Operation]:
        return []

    def compare_documents(
        self,
        previous: Optional[dict],
        current: Optional[dict],
        ctx: DocumentCompareContext,
    ) -> DocumentComparison:
        return DocumentComparison()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.api_type.value})"


def identities(*ids: Optional[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(i for i in ids if i))


def empty_sections(template: dict, sections: Tuple[str, ...]) -> dict:
    """Copy of ``template`` whose operation sections keep their keys but no content."""
    result: Dict[Any, Any] = {k: v for k, v in template.items() if k not in sections}
    for section in sections:
        if isinstance(template.get(section), dict):
            result[section] = {}
    return result
