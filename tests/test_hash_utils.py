"""Tests for hash utilities and canonicalization rules."""

import pytest

from apidelta.codes import Notifications
from apidelta.kernel.diff import MISSING, ORIGINS_KEY, TOLERANT_HASH_KEY
from apidelta.kernel.hash_utils import (
    CanonicalizationError,
    HashCache,
    calculate_hash,
    calculate_tolerant_hash,
    canonicalize_json,
    hash_value,
    tolerant_hash,
)


class TestCanonicalizeJson:
    """Tests for canonicalize_json function."""

    def test_simple_dict_sorts_keys(self):
        """Object keys should be sorted."""
        obj = {"b": 2, "a": 1, "c": 3}
        assert canonicalize_json(obj) == '{"a":1,"b":2,"c":3}'

    def test_nested_dict_sorts_recursively(self):
        obj = {"z": {"b": 2, "a": 1}, "a": {"d": 4, "c": 3}}
        assert canonicalize_json(obj) == '{"a":{"c":3,"d":4},"z":{"a":1,"b":2}}'

    def test_array_preserves_order(self):
        obj = {"items": [3, 1, 2]}
        assert canonicalize_json(obj) == '{"items":[3,1,2]}'

    def test_string_normalization_nfc(self):
        """Composed and decomposed forms of the same text canonicalize alike."""
        composed = {"text": "caf\u00e9"}
        decomposed = {"text": "cafe\u0301"}
        assert canonicalize_json(composed) == canonicalize_json(decomposed)

    def test_integral_float_equals_int(self):
        assert canonicalize_json({"value": 1.0}) == canonicalize_json({"value": 1})

    def test_fractional_float_allowed(self):
        assert canonicalize_json({"value": 0.5}) == '{"value":0.5}'

    def test_nan_banned_hard_error(self):
        with pytest.raises(CanonicalizationError, match="NaN or Inf"):
            canonicalize_json({"value": float("nan")})

        with pytest.raises(CanonicalizationError, match="NaN or Inf"):
            canonicalize_json({"items": [1, float("inf")]})

    def test_non_json_types_forbidden(self):
        with pytest.raises(CanonicalizationError, match="Non-JSON type"):
            canonicalize_json({"value": object()})

        from datetime import datetime
        with pytest.raises(CanonicalizationError, match="Non-JSON type"):
            canonicalize_json({"date": datetime.now()})

    def test_dict_keys_must_be_strings(self):
        with pytest.raises(CanonicalizationError, match="Dictionary keys must be strings"):
            canonicalize_json({1: "value"})

        with pytest.raises(CanonicalizationError, match="Dictionary keys must be strings"):
            canonicalize_json({True: "value"})

    def test_annotation_keys_skipped(self):
        """Keys attached by the diff primitive never reach the serialized form."""
        obj = {"type": "string", ORIGINS_KEY: {"type": [("a", "type")]}}
        assert canonicalize_json(obj) == '{"type":"string"}'

    def test_tolerant_drops_documentation_and_extensions(self):
        obj = {
            "type": "string",
            "description": "Pet status",
            "title": "Status",
            "example": "sold",
            "x-internal": True,
        }
        assert canonicalize_json(obj, tolerant=True) == '{"type":"string"}'


class TestHashValue:
    """Tests for hash_value function."""

    def test_prefix_and_length(self):
        result = hash_value({"key": "value"})
        assert result.startswith("sha256:")
        assert len(result) == 71  # "sha256:" + 64 hex chars

    def test_order_independent(self):
        assert hash_value({"a": 1, "b": 2}) == hash_value({"b": 2, "a": 1})

    def test_array_order_matters(self):
        assert hash_value({"items": [1, 2, 3]}) != hash_value({"items": [3, 2, 1]})

    def test_different_values_different_hash(self):
        assert hash_value({"key": "value1"}) != hash_value({"key": "value2"})

    def test_missing_value_hashes_to_empty(self):
        assert hash_value(MISSING) == ""

    def test_null_is_a_value(self):
        assert hash_value(None).startswith("sha256:")

    def test_tolerant_hash_ignores_descriptions(self):
        first = {"type": "string", "description": "old"}
        second = {"type": "string", "description": "new"}
        assert hash_value(first) != hash_value(second)
        assert tolerant_hash(first) == tolerant_hash(second)


class TestHashCache:
    """Identity-keyed memoization."""

    def test_cached_by_identity(self):
        cache = HashCache()
        value = {"a": 1}
        first = cache.hash(value)
        assert value in cache
        assert len(cache) == 1
        assert cache.hash(value) == first

    def test_first_hash_wins(self):
        """A later mutation of the same object does not change its cached hash."""
        cache = HashCache()
        value = {"a": 1}
        first = cache.hash(value)
        value["a"] = 2
        assert cache.hash(value) == first
        assert hash_value(value) != first

    def test_equal_objects_cached_separately(self):
        cache = HashCache()
        first, second = {"a": 1}, {"a": 1}
        assert cache.hash(first) == cache.hash(second)
        assert len(cache) == 2

    def test_scalars_not_cached(self):
        cache = HashCache()
        assert cache.hash("text") == hash_value("text")
        assert len(cache) == 0

    def test_calculate_hash_without_cache(self):
        assert calculate_hash({"a": 1}) == hash_value({"a": 1})


class TestCalculateTolerantHash:
    """Failures are reported, never raised."""

    def test_undefined_value_reported(self):
        notifications = Notifications()
        assert calculate_tolerant_hash(None, notifications) is None
        assert calculate_tolerant_hash(MISSING, notifications) is None
        assert [m.message for m in notifications.errors] == [
            "[Deprecated items] Tolerant hash is not defined",
            "[Deprecated items] Tolerant hash is not defined",
        ]

    def test_canonicalization_failure_reported(self):
        notifications = Notifications()
        assert calculate_tolerant_hash({"value": float("nan")}, notifications) is None
        assert len(notifications.errors) == 1
        assert notifications.errors[0].message.startswith("[Deprecated items] Something wrong with tolerant hash")

    def test_attached_hash_takes_precedence(self):
        notifications = Notifications()
        value = {"type": "string", TOLERANT_HASH_KEY: "sha256:precomputed"}
        assert calculate_tolerant_hash(value, notifications) == "sha256:precomputed"
        assert len(notifications) == 0

    def test_computed_when_not_attached(self):
        notifications = Notifications()
        value = {"type": "string", "description": "text"}
        assert calculate_tolerant_hash(value, notifications) == tolerant_hash({"type": "string"})
