"""Attribution of document-level diffs to operation pairs, and deduplication."""

import logging
from typing import Dict, List, Optional, Set, Tuple

from apidelta.errors import ComparisonError
from apidelta.kernel.diff import Diff
from apidelta.kernel.documents import DocumentComparison, DocumentPair
from apidelta.kernel.hash_utils import HashCache, calculate_hash
from apidelta.kernel.operation import OperationPair
from apidelta.kernel.operation_id import normalized_operation_id


logger = logging.getLogger(__name__)


def _paths_key(paths) -> str:
    return "[" + ",".join(sorted("[" + ",".join(str(p) for p in path) + "]" for path in paths)) + "]"


def calculate_diff_id(diff: Diff, cache: Optional[HashCache] = None) -> str:
    """Content-derived identity of a diff, stable across document pairs."""
    before_hash = calculate_hash(diff.before_value, cache) if diff.has_before_value else ""
    after_hash = calculate_hash(diff.after_value, cache) if diff.has_after_value else ""
    before_key = "" if diff.before_key is None else diff.before_key
    after_key = "" if diff.after_key is None else diff.after_key
    return "-".join([
        _paths_key(diff.before_declaration_paths),
        _paths_key(diff.after_declaration_paths),
        before_hash,
        after_hash,
        diff.scope,
        diff.action.value,
        str(before_key),
        str(after_key),
        diff.type.value,
    ])


def dedupe_diffs(diffs: List[Diff], cache: Optional[HashCache] = None) -> List[Diff]:
    """Keep the first diff of every content id, in input order."""
    seen: Set[str] = set()
    result = []
    for diff in diffs:
        diff_id = calculate_diff_id(diff, cache)
        if diff_id in seen:
            continue
        seen.add(diff_id)
        result.append(diff)
    return result


def dedupe_by_origin(diffs: List[Diff]) -> List[Diff]:
    """Drop repeats of the same diff record (after any reclassification)."""
    seen: Set[Tuple[int, str]] = set()
    result = []
    for diff in diffs:
        key = (id(diff.origin), diff.type.value)
        if key in seen:
            continue
        seen.add(key)
        result.append(diff)
    return result


def build_identity_index(pairs: Dict[str, OperationPair]) -> Dict[str, str]:
    """Map every id an operation may be found under to its pairing key.

    Pairing keys take precedence, then current ids, previous ids and finally
    normalized ids. The first claim of an id wins.
    """
    index: Dict[str, str] = {}
    for key in pairs:
        index[key] = key
    for side in ("current", "previous"):
        for key, pair in pairs.items():
            operation = getattr(pair, side)
            if operation is not None:
                index.setdefault(operation.operation_id, key)
    for side in ("current", "previous"):
        for key, pair in pairs.items():
            operation = getattr(pair, side)
            if operation is not None:
                index.setdefault(normalized_operation_id(operation), key)
    return index


def attribute_diffs(
    document_pair: DocumentPair,
    comparison: DocumentComparison,
    index: Dict[str, str],
) -> Dict[str, List[Diff]]:
    """Group the builder's per-operation diffs by pairing key.

    Operations that belong to another document pair are skipped. An operation
    that matches no pair at all is fatal.
    """
    local = set(document_pair.operation_keys)
    result: Dict[str, List[Diff]] = {}
    for operation in comparison.operations:
        key = next((index[i] for i in operation.identities if i in index), None)
        if key is None:
            raise ComparisonError(
                f"Operation {operation.identities[0] if operation.identities else '?'} "
                f"of document pair {document_pair.label} cannot be resolved to any operation"
            )
        if key not in local:
            continue
        result.setdefault(key, []).extend(operation.diffs)
    return result


def merge_attributed(
    attributed: List[Dict[str, List[Diff]]],
    cache: Optional[HashCache] = None,
) -> Dict[str, List[Diff]]:
    """Fold per-document-pair attributions into one diff list per pairing key.

    With several document pairs the same change can surface more than once
    and is deduplicated by content id; a single pair only needs identity dedup.
    """
    merged: Dict[str, List[Diff]] = {}
    for part in attributed:
        for key, diffs in part.items():
            merged.setdefault(key, []).extend(diffs)
    if len(attributed) > 1:
        deduped = {key: dedupe_diffs(diffs, cache) for key, diffs in merged.items()}
        logger.debug(
            "Deduplicated %d diffs to %d across %d document pairs",
            sum(len(d) for d in merged.values()),
            sum(len(d) for d in deduped.values()),
            len(attributed),
        )
        return deduped
    return {key: dedupe_by_origin(diffs) for key, diffs in merged.items()}
