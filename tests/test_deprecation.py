"""Tests for deprecation history propagation."""

import asyncio

import pytest

from apidelta.codes import Notifications
from apidelta.config import VersionStatus
from apidelta.kernel.deprecation import (
    are_declaration_paths_equal,
    calculate_history_for_deprecated_items,
    find_previous_item,
    is_refactoring_case,
    match_shared_component,
    new_deprecate_item,
    prepend_history,
    propagate_operation_history,
    replace_version_candidate,
)
from apidelta.kernel.operation import ApiType, DeprecateItem, Operation


INLINE = [["paths", "/pet", "get", "responses", "200", "content", "application/json",
           "schema", "properties", "status", "deprecated"]]
SHARED = [["components", "schemas", "Pet", "properties", "status", "deprecated"]]
OPERATION_PATH = [["paths", "/pet", "get", "deprecated"]]


def item(paths, tolerant_hash=None, history=None, is_operation=False) -> DeprecateItem:
    return DeprecateItem(
        declaration_json_paths=paths,
        tolerant_hash=tolerant_hash,
        is_operation=is_operation,
        deprecated_in_previous_versions=list(history or []),
    )


def operation(items, operation_id="pet-get", history=None) -> Operation:
    return Operation(
        operation_id=operation_id,
        api_type=ApiType.REST,
        deprecated=any(i.is_operation for i in items),
        deprecated_items=items,
        deprecated_in_previous_versions=list(history or []),
    )


class TestPathMatching:
    def test_unordered_equality(self):
        assert are_declaration_paths_equal([["a"], ["b"]], [["b"], ["a"]])

    def test_count_must_match(self):
        assert not are_declaration_paths_equal([["a"], ["a"]], [["a"]])
        assert not are_declaration_paths_equal([["a"]], [["a"], ["b"]])

    def test_match_shared_component(self):
        assert match_shared_component(["components", "schemas", "Pet", "properties"]) == ("schemas", "Pet")
        assert match_shared_component(["paths", "/pet"]) is None
        assert match_shared_component(["components", "schemas"]) is None

    def test_non_string_component_segment_rejected(self):
        with pytest.raises(ValueError, match="can only be a string"):
            match_shared_component(["components", 0, "Pet"])

    def test_refactoring_is_exclusive_or(self):
        assert is_refactoring_case(SHARED, INLINE)
        assert is_refactoring_case(INLINE, SHARED)
        assert not is_refactoring_case(SHARED, SHARED)
        assert not is_refactoring_case(INLINE, INLINE)


class TestFindPreviousItem:
    def test_tolerant_hash_and_paths(self):
        previous = item(INLINE, "sha256:t", ["v1"])
        assert find_previous_item(item(INLINE, "sha256:t"), [previous]) is previous

    def test_tolerant_hash_mismatch(self):
        previous = item(INLINE, "sha256:other", ["v1"])
        assert find_previous_item(item(INLINE, "sha256:t"), [previous]) is None

    def test_refactoring_case_matches(self):
        """The element moved from an inline schema into a shared component."""
        previous = item(INLINE, "sha256:t", ["v1"])
        assert find_previous_item(item(SHARED, "sha256:t"), [previous]) is previous

    def test_operation_item_matches_on_paths(self):
        previous = item(OPERATION_PATH, history=["v1"], is_operation=True)
        assert find_previous_item(item(OPERATION_PATH, is_operation=True), [previous]) is previous

    def test_operation_item_path_mismatch(self):
        previous = item([["paths", "/pets", "get", "deprecated"]], history=["v1"], is_operation=True)
        assert find_previous_item(item(OPERATION_PATH, is_operation=True), [previous]) is None


class TestPropagation:
    def test_prepends_previous_history(self):
        current = item(INLINE, "sha256:t", ["v3"])
        prepend_history(current, ["v1", "v2"])
        assert current.deprecated_in_previous_versions == ["v1", "v2", "v3"]

    def test_no_duplicate_versions(self):
        current = item(INLINE, "sha256:t", ["v1", "v2"])
        prepend_history(current, ["v1"])
        assert current.deprecated_in_previous_versions == ["v1", "v2"]

    def test_history_from_previous_item(self):
        previous = operation([item(INLINE, "sha256:t", ["v1"])])
        current_item = item(INLINE, "sha256:t", ["v2"])
        current = operation([current_item])

        assert propagate_operation_history(current, previous, Notifications()) == 1
        assert current_item.deprecated_in_previous_versions == ["v1", "v2"]

    def test_operation_item_updates_operation_history(self):
        previous = operation([item(OPERATION_PATH, history=["v1", "v2"], is_operation=True)])
        current = operation([item(OPERATION_PATH, history=["v2", "v3"], is_operation=True)])

        propagate_operation_history(current, previous, Notifications())
        assert current.deprecated_in_previous_versions == ["v1", "v2", "v3"]

    def test_operation_history_is_union_of_item_histories(self):
        previous = operation([item(OPERATION_PATH, history=["v2"], is_operation=True)])
        current = operation([
            item(OPERATION_PATH, history=["v3"], is_operation=True),
            item(INLINE, "sha256:t", ["v1", "v3"]),
        ])

        propagate_operation_history(current, previous, Notifications())
        assert current.deprecated_in_previous_versions == ["v2", "v3", "v1"]

    def test_unmatched_item_keeps_own_history(self):
        previous = operation([item(INLINE, "sha256:other", ["v1"])])
        current_item = item(INLINE, "sha256:t")
        propagate_operation_history(operation([current_item]), previous, Notifications())
        assert current_item.deprecated_in_previous_versions == []

    def test_matching_failure_reported(self):
        notifications = Notifications()
        previous = operation([item([["components", 0, "Pet", "deprecated"]], "sha256:t", ["v1"])])
        current_item = item(INLINE, "sha256:t")

        assert propagate_operation_history(operation([current_item]), previous, notifications) == 0
        assert current_item.deprecated_in_previous_versions == []
        assert len(notifications.errors) == 1
        assert "[Deprecated items]" in notifications.errors[0].message


class TestBatchedHistory:
    def test_batches_fetched_sequentially(self):
        operations = [
            operation([item(INLINE, "sha256:t")], operation_id=f"op-{i}") for i in range(5)
        ]
        operations.append(operation([], operation_id="not-deprecated"))
        calls = []

        async def fetch(chunk):
            calls.append(list(chunk))
            return [operation([item(INLINE, "sha256:t", ["v1"])], operation_id=i) for i in chunk]

        asyncio.run(calculate_history_for_deprecated_items(operations, fetch, Notifications(), batch_size=2))

        assert calls == [["op-0", "op-1"], ["op-2", "op-3"], ["op-4"]]
        for op in operations[:5]:
            assert op.deprecated_items[0].deprecated_in_previous_versions == ["v1"]

    def test_unavailable_batch_reported(self):
        notifications = Notifications()
        current = operation([item(INLINE, "sha256:t", ["v2"])])

        async def fetch(chunk):
            return None

        asyncio.run(calculate_history_for_deprecated_items([current], fetch, notifications))
        assert len(notifications.errors) == 1
        assert current.deprecated_items[0].deprecated_in_previous_versions == ["v2"]

    def test_nothing_to_fetch(self):
        async def fetch(chunk):
            raise AssertionError("must not be called")

        asyncio.run(calculate_history_for_deprecated_items([operation([])], fetch, Notifications()))


class TestNewItems:
    def test_release_records_its_version(self):
        new = new_deprecate_item([["a", "deprecated"]], "desc", "2024.1", VersionStatus.RELEASE,
                                 hash="sha256:h", tolerant_hash="sha256:t")
        assert new.deprecated_in_previous_versions == ["2024.1"]
        assert (new.hash, new.tolerant_hash) == ("sha256:h", "sha256:t")

    def test_draft_starts_empty(self):
        new = new_deprecate_item([["a", "deprecated"]], "desc", "2024.1", VersionStatus.DRAFT)
        assert new.deprecated_in_previous_versions == []

    def test_operation_items_carry_no_hashes(self):
        new = new_deprecate_item(OPERATION_PATH, "desc", "v1", VersionStatus.DRAFT,
                                 is_operation=True, hash="sha256:h", tolerant_hash="sha256:t")
        assert new.hash is None and new.tolerant_hash is None


class TestReplaceVersionCandidate:
    def test_candidate_renamed(self):
        op = operation([item(INLINE, "sha256:t", ["v1", "rc"])], history=["rc"])
        replace_version_candidate([op], "rc", "v2", VersionStatus.DRAFT)
        assert op.deprecated_items[0].deprecated_in_previous_versions == ["v1", "v2"]
        assert op.deprecated_in_previous_versions == ["v2"]

    def test_release_appends_final_version_once(self):
        op = operation([item(INLINE, "sha256:t", ["v1", "rc"])])
        replace_version_candidate([op], "rc", "v2", VersionStatus.RELEASE)
        assert op.deprecated_items[0].deprecated_in_previous_versions == ["v1", "v2"]
        # empty operation history stays empty
        assert op.deprecated_in_previous_versions == []
