"""Document pairing.

Operation pairs are grouped by the (previous document, current document)
that declare them. Each resulting ``DocumentPair`` drives exactly one call to
the diff primitive.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from apidelta.kernel.diff import Diff
from apidelta.kernel.operation import DocumentRef, OperationPair


logger = logging.getLogger(__name__)

DocumentKey = Tuple[Optional[str], Optional[str]]


@dataclass
class DocumentPair:
    previous: Optional[DocumentRef]
    current: Optional[DocumentRef]
    operation_keys: List[str] = field(default_factory=list)

    @property
    def key(self) -> DocumentKey:
        return (
            self.previous.slug if self.previous is not None else None,
            self.current.slug if self.current is not None else None,
        )

    @property
    def is_complete(self) -> bool:
        return self.previous is not None and self.current is not None

    @property
    def label(self) -> str:
        prev_slug, curr_slug = self.key
        return f"({prev_slug or '-'}, {curr_slug or '-'})"


@dataclass
class OperationDiffs:
    """Diffs a builder attributed to one operation found in a merged document.

    ``identities`` are the ids under which the operation may appear in the
    pairing map, most specific first.
    """
    identities: Tuple[str, ...]
    diffs: List[Diff]


@dataclass
class DocumentComparison:
    """Result of diffing one document pair: the merged tree and per-operation diffs."""
    operations: List[OperationDiffs] = field(default_factory=list)
    diffs: List[Diff] = field(default_factory=list)
    merged: Any = None


def pair_documents(pairs: Dict[str, OperationPair]) -> List[DocumentPair]:
    """Minimal set of document pairs covering every operation pair.

    A partial pair ``(doc, None)`` or ``(None, doc)`` is dropped when a
    complete pair holds the same document on the same side; its operations
    move to that complete pair. Operations declared by no document at all
    are not covered.
    """
    by_key: Dict[DocumentKey, DocumentPair] = {}
    for key, pair in pairs.items():
        previous = pair.previous.document if pair.previous is not None else None
        current = pair.current.document if pair.current is not None else None
        if previous is None and current is None:
            logger.debug("Operation %s has no document on either side", key)
            continue
        document_pair = DocumentPair(previous=previous, current=current)
        document_pair = by_key.setdefault(document_pair.key, document_pair)
        document_pair.operation_keys.append(key)

    complete_by_previous: Dict[str, DocumentPair] = {}
    complete_by_current: Dict[str, DocumentPair] = {}
    for document_pair in by_key.values():
        if document_pair.is_complete:
            complete_by_previous.setdefault(document_pair.previous.slug, document_pair)
            complete_by_current.setdefault(document_pair.current.slug, document_pair)

    result: List[DocumentPair] = []
    for document_pair in by_key.values():
        if document_pair.is_complete:
            result.append(document_pair)
            continue
        if document_pair.previous is not None:
            owner = complete_by_previous.get(document_pair.previous.slug)
        else:
            owner = complete_by_current.get(document_pair.current.slug)
        if owner is None:
            result.append(document_pair)
            continue
        logger.debug("Document pair %s is covered by %s", document_pair.label, owner.label)
        owner.operation_keys.extend(document_pair.operation_keys)
    return result
