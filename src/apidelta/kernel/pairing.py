"""Pairing of previous/current operations across two versions."""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from apidelta.kernel.operation import Operation, OperationPair
from apidelta.kernel.operation_id import group_slug, normalized_operation_id, strip_group_prefix


logger = logging.getLogger(__name__)


def _index_first(operations: Iterable[Tuple[str, Operation]]) -> Dict[str, Operation]:
    index: Dict[str, Operation] = {}
    for key, operation in operations:
        if key in index:
            logger.debug("Duplicate pairing key %s, keeping first occurrence", key)
            continue
        index[key] = operation
    return index


def _grouped(operations: List[Operation], slug: str) -> Dict[str, Operation]:
    keyed = []
    for operation in operations:
        key = strip_group_prefix(normalized_operation_id(operation), slug)
        if key is not None:
            keyed.append((key, operation))
    return _index_first(keyed)


def pair_operations(
    previous: List[Operation],
    current: List[Operation],
    previous_group: Optional[str] = None,
    current_group: Optional[str] = None,
) -> Dict[str, OperationPair]:
    """
    Pair two operation lists by identity.

    Prefix mode (either group set): each side is restricted to operations
    whose normalized id starts with its group slug; the remainder of the
    normalized id is the pairing key.

    Otherwise operations pair by plain operation id, and operations left
    unmatched on both sides are paired by normalized id to survive path
    parameter renames.

    Duplicate keys keep their first occurrence. The result is ordered:
    current operations in input order, then unmatched previous operations.
    """
    if previous_group or current_group:
        prev_index = _grouped(previous, group_slug(previous_group))
        curr_index = _grouped(current, group_slug(current_group))
        pairs: Dict[str, OperationPair] = {}
        for key, operation in curr_index.items():
            pairs[key] = OperationPair(previous=prev_index.get(key), current=operation)
        for key, operation in prev_index.items():
            if key not in pairs:
                pairs[key] = OperationPair(previous=operation)
        logger.debug("Paired %d operations in prefix mode", len(pairs))
        return pairs

    prev_index = _index_first((op.operation_id, op) for op in previous)
    curr_index = _index_first((op.operation_id, op) for op in current)

    unmatched_current = {
        normalized_operation_id(op): key
        for key, op in reversed(list(curr_index.items()))
        if key not in prev_index
    }
    # previous id -> current id, for matches found through normalized ids
    renamed: Dict[str, str] = {}
    for key, operation in prev_index.items():
        if key in curr_index:
            continue
        match = unmatched_current.pop(normalized_operation_id(operation), None)
        if match is not None:
            renamed[match] = key

    pairs = {}
    for key, operation in curr_index.items():
        prev_key = key if key in prev_index else renamed.get(key)
        pairs[key] = OperationPair(
            previous=prev_index.get(prev_key) if prev_key is not None else None,
            current=operation,
        )
    matched_previous = set(renamed.values()) | set(curr_index)
    for key, operation in prev_index.items():
        if key not in matched_previous:
            pairs.setdefault(key, OperationPair(previous=operation))
    logger.debug("Paired %d operations (%d via normalized id)", len(pairs), len(renamed))
    return pairs
