"""Tests for backward-compatibility reclassification."""

from apidelta.codes import Notifications
from apidelta.kernel.bwc import (
    apply_api_kind_rule,
    find_required_removed_properties,
    reclassify_operation_diffs,
    reclassify_rest_diffs,
)
from apidelta.kernel.diff import Diff, DiffAction, DiffType
from apidelta.kernel.hash_utils import hash_value
from apidelta.kernel.operation import ApiKind, ApiType, DeprecateItem, Operation
from apidelta.kernel.tree_diff import DiffOptions, attach_origins, default_classifier, diff_trees


STATUS_PATH = ("components", "schemas", "Pet", "properties", "status")


def operation(api_kind: ApiKind = ApiKind.BWC, **fields) -> Operation:
    return Operation(operation_id="pet-get", api_type=ApiType.REST, api_kind=api_kind, **fields)


def breaking(action: DiffAction = DiffAction.REPLACE, **fields) -> Diff:
    return Diff(action=action, type=DiffType.BREAKING, **fields)


def operation_remove() -> Diff:
    return breaking(
        DiffAction.REMOVE,
        before_declaration_paths=(("paths", "/pet", "get"),),
        before_value={"responses": {}},
    )


def deprecated_status():
    value = attach_origins({"type": "string", "deprecated": True}, STATUS_PATH)
    return value, [list(STATUS_PATH + ("deprecated",))]


class TestApiKindRule:
    def test_no_bwc_downgrades_breaking_only(self):
        diffs = [
            breaking(),
            Diff(action=DiffAction.ADD, type=DiffType.NON_BREAKING),
            Diff(action=DiffAction.ADD, type=DiffType.DEPRECATED),
        ]
        result = apply_api_kind_rule(diffs, operation(ApiKind.NO_BWC), operation())
        assert [d.type for d in result] == [DiffType.RISKY, DiffType.NON_BREAKING, DiffType.DEPRECATED]
        assert result[1] is diffs[1]

    def test_either_side_counts(self):
        result = apply_api_kind_rule([breaking()], None, operation(ApiKind.NO_BWC))
        assert result[0].type == DiffType.RISKY

    def test_bwc_and_experimental_unchanged(self):
        diffs = [breaking()]
        assert apply_api_kind_rule(diffs, operation(), operation(ApiKind.EXPERIMENTAL))[0] is diffs[0]

    def test_inputs_not_mutated(self):
        diff = breaking()
        result = apply_api_kind_rule([diff], operation(ApiKind.NO_BWC), None)
        assert diff.type == DiffType.BREAKING
        assert result[0].origin is diff


class TestDeprecationDepth:
    def test_operation_removal_deprecated_for_two_releases_is_risky(self):
        snapshot = operation(deprecated=True, deprecated_in_previous_versions=["v1", "v2"])
        result = reclassify_rest_diffs([operation_remove()], None, snapshot, Notifications())
        assert result[0].type == DiffType.RISKY

    def test_operation_removal_deprecated_for_one_release_stays_breaking(self):
        snapshot = operation(deprecated=True, deprecated_in_previous_versions=["v1"])
        result = reclassify_rest_diffs([operation_remove()], None, snapshot, Notifications())
        assert result[0].type == DiffType.BREAKING

    def test_without_snapshot_nothing_changes(self):
        diff = operation_remove()
        assert reclassify_rest_diffs([diff], None, None, Notifications()) == [diff]

    def test_removed_deprecated_value_matched_by_hash_and_paths(self):
        value, paths = deprecated_status()
        item = DeprecateItem(
            declaration_json_paths=paths,
            hash=hash_value(value),
            deprecated_in_previous_versions=["v1", "v2"],
        )
        diff = breaking(DiffAction.REMOVE, before_declaration_paths=(STATUS_PATH,), before_value=value)
        result = reclassify_rest_diffs([diff], None, operation(deprecated_items=[item]), Notifications())
        assert result[0].type == DiffType.RISKY

    def test_removed_deprecated_value_with_short_history_stays_breaking(self):
        value, paths = deprecated_status()
        item = DeprecateItem(declaration_json_paths=paths, hash=hash_value(value),
                             deprecated_in_previous_versions=["v2"])
        diff = breaking(DiffAction.REMOVE, before_declaration_paths=(STATUS_PATH,), before_value=value)
        result = reclassify_rest_diffs([diff], None, operation(deprecated_items=[item]), Notifications())
        assert result[0].type == DiffType.BREAKING

    def test_hash_mismatch_stays_breaking(self):
        value, paths = deprecated_status()
        item = DeprecateItem(declaration_json_paths=paths, hash="sha256:other",
                             deprecated_in_previous_versions=["v1", "v2"])
        diff = breaking(DiffAction.REMOVE, before_declaration_paths=(STATUS_PATH,), before_value=value)
        result = reclassify_rest_diffs([diff], None, operation(deprecated_items=[item]), Notifications())
        assert result[0].type == DiffType.BREAKING

    def test_non_object_removed_value_reported(self):
        notifications = Notifications()
        diff = breaking(DiffAction.REMOVE, before_declaration_paths=(("a", "b"),), before_value="text")
        result = reclassify_rest_diffs([diff], None, operation(), notifications)
        assert result[0].type == DiffType.BREAKING
        assert [m.message for m in notifications.errors] == [
            "[Risky validation] Something wrong with beforeNormalizedValue from diff",
        ]

    def test_deprecated_value_without_origins_reported(self):
        notifications = Notifications()
        diff = breaking(DiffAction.REMOVE, before_declaration_paths=(("a", "b"),),
                        before_value={"deprecated": True})
        reclassify_rest_diffs([diff], None, operation(), notifications)
        assert [m.message for m in notifications.errors] == ["[Risky validation] Something wrong with origins"]


def _property_removal_classifier(action, path, before, after):
    if action == DiffAction.REMOVE and len(path) > 1 and path[-2] == "properties":
        return DiffType.NON_BREAKING
    return default_classifier(action, path, before, after)


class TestRequiredRule:
    BEFORE = {
        "type": "object",
        "required": ["id", "name"],
        "properties": {"id": {"type": "integer"}, "name": {"type": "string"}},
    }
    AFTER = {
        "type": "object",
        "required": ["id"],
        "properties": {"id": {"type": "integer"}},
    }

    def test_required_removal_follows_property_removal(self):
        result = diff_trees(self.BEFORE, self.AFTER, DiffOptions(classifier=_property_removal_classifier))
        types = {d.before_declaration_paths[0]: d.type for d in result.diffs}
        assert types == {("required", 1): DiffType.BREAKING, ("properties", "name"): DiffType.NON_BREAKING}

        reclassified = reclassify_rest_diffs(result.diffs, result.merged, None, Notifications())
        by_path = {d.before_declaration_paths[0]: d.type for d in reclassified}
        assert by_path[("required", 1)] == DiffType.RISKY
        assert by_path[("properties", "name")] == DiffType.NON_BREAKING

    def test_breaking_property_removal_keeps_required_breaking(self):
        result = diff_trees(self.BEFORE, self.AFTER)
        reclassified = reclassify_rest_diffs(result.diffs, result.merged, None, Notifications())
        assert all(d.type == DiffType.BREAKING for d in reclassified)

    def test_find_required_removed_properties(self):
        result = diff_trees(self.BEFORE, self.AFTER)
        removed = [d for d in result.diffs if isinstance(d.before_value, dict)]
        found = find_required_removed_properties(result.merged, removed)
        assert len(found) == 1
        name, prop_diff, required_diff = found[0]
        assert name == "name"
        assert prop_diff is removed[0]
        assert required_diff.before_value == "name"


def test_all_rules_in_order():
    """Depth rule first, then the api-kind rule catches what is left."""
    snapshot = operation(deprecated=True, deprecated_in_previous_versions=["v1", "v2"])
    other = breaking()
    result = reclassify_operation_diffs(
        [operation_remove(), other],
        operation(ApiKind.NO_BWC),
        None,
        snapshot=snapshot,
        notifications=Notifications(),
        rest=True,
    )
    assert [d.type for d in result] == [DiffType.RISKY, DiffType.RISKY]


def test_rest_rules_skipped_for_other_dialects():
    snapshot = operation(deprecated=True, deprecated_in_previous_versions=["v1", "v2"])
    result = reclassify_operation_diffs([operation_remove()], operation(), None, snapshot=snapshot)
    assert result[0].type == DiffType.BREAKING
