"""Deprecation history propagation.

Each deprecated element of the version being built inherits the list of
earlier versions in which the same element was already deprecated. The
counterpart in the previous version is found by tolerant hash plus
declaration paths for nested elements, and by declaration paths alone for
the operation itself.
"""

import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from apidelta.codes import Notifications
from apidelta.config import DEFAULT_BATCH_SIZE, VersionStatus
from apidelta.kernel.batches import iter_batches
from apidelta.kernel.hash_utils import CanonicalizationError
from apidelta.kernel.operation import DeprecateItem, Operation


logger = logging.getLogger(__name__)

COMPONENTS_PROPERTY = "components"

# (operation ids) -> previous version's deprecation records for those ids
DeprecatedFetch = Callable[[List[str]], Awaitable[Optional[List[Operation]]]]


def _as_path(path: Iterable) -> Tuple:
    return tuple(path)


def are_declaration_paths_equal(first: Sequence[Sequence], second: Sequence[Sequence]) -> bool:
    """Unordered equality of two declaration path lists (same count, same paths)."""
    if len(first) != len(second):
        return False
    first_set = {_as_path(p) for p in first}
    second_set = {_as_path(p) for p in second}
    return len(first_set) == len(second_set) and first_set == second_set


def match_shared_component(path: Sequence) -> Optional[Tuple[str, str]]:
    """(component type, component name) when ``path`` points into ``components``.

    Raises:
        ValueError: If the component type or name segment is not a string
    """
    if len(path) < 3 or path[0] != COMPONENTS_PROPERTY:
        return None
    component_type, component_name = path[1], path[2]
    if not isinstance(component_type, str) or not isinstance(component_name, str):
        raise ValueError(f"Component type and name can only be a string. JSON path: {list(path)}")
    return component_type, component_name


def is_refactoring_case(first: Sequence[Sequence], second: Sequence[Sequence]) -> bool:
    """True when exactly one side is declared entirely inside shared components.

    This is a heuristic: an element moved between an inline occurrence and a
    shared definition keeps its identity.
    """
    def all_shared(paths: Sequence[Sequence]) -> bool:
        if not paths:
            return True
        return all(match_shared_component(p) is not None for p in paths)

    return all_shared(first) != all_shared(second)


def are_same_deprecated_items(previous: DeprecateItem, current: DeprecateItem) -> bool:
    if previous.tolerant_hash != current.tolerant_hash:
        return False
    if are_declaration_paths_equal(previous.declaration_json_paths, current.declaration_json_paths):
        return True
    return is_refactoring_case(previous.declaration_json_paths, current.declaration_json_paths)


def find_previous_item(current: DeprecateItem, candidates: List[DeprecateItem]) -> Optional[DeprecateItem]:
    for candidate in candidates:
        if candidate.tolerant_hash and current.tolerant_hash:
            if are_same_deprecated_items(candidate, current):
                return candidate
        elif are_declaration_paths_equal(candidate.declaration_json_paths, current.declaration_json_paths):
            return candidate
    return None


def _unique(versions: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(versions))


def prepend_history(item: DeprecateItem, previous_versions: List[str]) -> None:
    """Prepend older versions, keeping oldest-first order and each version once."""
    item.deprecated_in_previous_versions = _unique(
        list(previous_versions) + list(item.deprecated_in_previous_versions)
    )


def propagate_operation_history(current: Operation, previous: Operation, notifications: Notifications) -> int:
    """Carry history from one previous operation record into ``current``.

    Returns the number of matched items.
    """
    matched = 0
    operation_matched = False
    for item in current.deprecated_items:
        try:
            counterpart = find_previous_item(item, previous.deprecated_items)
        except (ValueError, CanonicalizationError) as e:
            notifications.error(
                f"[Deprecated items] Cannot match deprecated item '{item.description}' "
                f"of operation {current.operation_id}: {e}"
            )
            continue
        if counterpart is None:
            continue
        matched += 1
        prepend_history(item, counterpart.deprecated_in_previous_versions)
        operation_matched = operation_matched or item.is_operation
    if operation_matched:
        current.deprecated_in_previous_versions = _unique(
            version for item in current.deprecated_items for version in item.deprecated_in_previous_versions
        )
    return matched


async def calculate_history_for_deprecated_items(
    operations: List[Operation],
    fetch: DeprecatedFetch,
    notifications: Notifications,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> None:
    """
    Propagate deprecation history for every deprecation-bearing operation.

    ``fetch`` is called once per chunk of operation ids, sequentially. A
    ``None`` result is reported and treated as no history for that chunk.
    Items are edited in place.
    """
    deprecated: Dict[str, Operation] = {}
    for operation in operations:
        if operation.has_deprecations:
            deprecated.setdefault(operation.operation_id, operation)
    if not deprecated:
        return

    matched = 0
    async for chunk, resolved in iter_batches(list(deprecated), fetch, batch_size):
        if resolved is None:
            notifications.error(
                f"[Deprecated items] Previous deprecation records are unavailable for {len(chunk)} operations"
            )
            continue
        for previous in resolved:
            current = deprecated.get(previous.operation_id)
            if current is None or not current.deprecated_items:
                continue
            matched += propagate_operation_history(current, previous, notifications)
    logger.debug("Propagated deprecation history for %d items", matched)


def new_deprecate_item(
    declaration_json_paths: List[List],
    description: str,
    version: str,
    status: VersionStatus,
    is_operation: bool = False,
    deprecated_info: Optional[str] = None,
    hash: Optional[str] = None,
    tolerant_hash: Optional[str] = None,
) -> DeprecateItem:
    """A freshly deprecated item; release builds record their own version."""
    return DeprecateItem(
        declaration_json_paths=[list(p) for p in declaration_json_paths],
        description=description,
        deprecated_info=deprecated_info,
        is_operation=is_operation,
        hash=None if is_operation else hash,
        tolerant_hash=None if is_operation else tolerant_hash,
        deprecated_in_previous_versions=[version] if status == VersionStatus.RELEASE else [],
    )


def _replace_in(versions: List[str], candidate: str, version: str, status: VersionStatus) -> List[str]:
    replaced = [version if v == candidate else v for v in versions]
    if status == VersionStatus.RELEASE:
        replaced.append(version)
    return _unique(replaced)


def replace_version_candidate(
    operations: List[Operation],
    candidate: str,
    version: str,
    status: VersionStatus,
) -> None:
    """Rename a version-candidate label to the final version in every history list.

    Release builds also record the final version itself.
    """
    for operation in operations:
        for item in operation.deprecated_items:
            item.deprecated_in_previous_versions = _replace_in(
                item.deprecated_in_previous_versions, candidate, version, status
            )
        if operation.deprecated_in_previous_versions:
            operation.deprecated_in_previous_versions = _replace_in(
                operation.deprecated_in_previous_versions, candidate, version, status
            )
