"""Tests for operation identity resolution."""

import pytest

from apidelta.kernel.operation import ApiType, Operation
from apidelta.kernel.operation_id import (
    asyncapi_operation_id,
    get_operation_base_path,
    graphql_operation_id,
    group_slug,
    hide_path_param_names,
    normalized_operation_id,
    rest_normalized_operation_id,
    rest_operation_id,
    slugify,
    strip_group_prefix,
)


class TestSlugify:
    def test_separators_become_single_dash(self):
        assert slugify("Pet/{id}.json (v2)") == "pet-id-json-v2"

    def test_leading_and_trailing_dashes_dropped(self):
        assert slugify("/pets/") == "pets"

    def test_unsafe_characters_percent_escaped(self):
        assert slugify("a:b") == "a%3Ab"

    def test_wildcard_survives(self):
        assert slugify("pet/*-get") == "pet-*-get"

    def test_empty(self):
        assert slugify("") == ""


class TestRestIds:
    def test_plain_id(self):
        assert rest_operation_id("", "/pet/{id}", "get") == "pet-id-get"

    def test_base_path_prefix(self):
        assert rest_operation_id("/api/v1", "/pets", "post") == "api-v1-pets-post"

    def test_normalized_id_hides_parameter_names(self):
        first = rest_normalized_operation_id("", "/pet/{id}", "get")
        second = rest_normalized_operation_id("", "/pet/{petId}", "get")
        assert first == second == "pet-*-get"

    def test_hide_path_param_names(self):
        assert hide_path_param_names("/a/{x}/b/{y}") == "/a/*/b/*"

    def test_normalized_operation_id_uses_metadata(self):
        operation = Operation(
            operation_id="pet-petid-get",
            api_type=ApiType.REST,
            metadata={"path": "/pet/{petId}", "method": "get"},
        )
        assert normalized_operation_id(operation) == "pet-*-get"

    def test_normalized_operation_id_of_other_dialects_is_plain(self):
        operation = Operation(operation_id="query-pets", api_type=ApiType.GRAPHQL)
        assert normalized_operation_id(operation) == "query-pets"


class TestBasePath:
    @pytest.mark.parametrize("servers,expected", [
        (None, ""),
        ([], ""),
        ([{"url": "https://example.com/api/v1/"}], "/api/v1"),
        ([{"url": "/relative"}], "/relative"),
        ([{"url": "https://example.com/{base}", "variables": {"base": {"default": "v2"}}}], "/v2"),
        ([{"description": "no url"}], ""),
    ])
    def test_first_server_path(self, servers, expected):
        assert get_operation_base_path(servers) == expected


class TestOtherDialects:
    def test_asyncapi(self):
        assert asyncapi_operation_id("send", "user/signedup") == "send-user-signedup"

    def test_graphql(self):
        assert graphql_operation_id("query", "listPets") == "query-listpets"


class TestGroups:
    def test_group_slug(self):
        assert group_slug("/api/v1") == "api-v1"
        assert group_slug(None) == ""

    def test_strip_group_prefix(self):
        assert strip_group_prefix("api-v1-pets-get", "api-v1") == "pets-get"

    def test_strip_outside_group(self):
        assert strip_group_prefix("api-v2-pets-get", "api-v1") is None

    def test_strip_without_group(self):
        assert strip_group_prefix("pets-get", "") == "pets-get"
