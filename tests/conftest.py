"""Pytest configuration for tests.

No sys.path hacks - tests import from the installed apidelta package.

``FakeRegistry`` stands in for the surrounding builder: it stores normalized
documents per (version, package) and answers the async resolvers of
``CompareContext`` from them.
"""

import copy
import json
from typing import Dict, List, Optional, Tuple

import pytest

from apidelta.api import CompareContext
from apidelta.apitypes import BuildContext, get_builder
from apidelta.config import CompareConfig, VersionStatus
from apidelta.kernel.operation import ApiType, DocumentRef, Operation, ResolvedVersion


class FakeRegistry:
    """In-memory published versions: documents, operations and deprecation records."""

    def __init__(self) -> None:
        self.documents: Dict[Tuple[str, str], Dict[str, Tuple[ApiType, dict]]] = {}
        self.calls: List[Tuple] = []
        self.missing_versions = set()
        self.deprecated_unavailable = False
        # published versions record their own version in deprecation history
        self.status = VersionStatus.RELEASE

    def publish(self, version: str, package_id: str, documents: Dict[str, dict], api_type: ApiType = ApiType.REST):
        slot = self.documents.setdefault((version, package_id), {})
        for slug, document in documents.items():
            slot[slug] = (api_type, copy.deepcopy(document))

    def operations(self, api_type: ApiType, version: str, package_id: str) -> List[Operation]:
        result = []
        ctx = BuildContext(version=version, status=self.status)
        for slug, (doc_type, document) in self.documents.get((version, package_id), {}).items():
            if doc_type != api_type:
                continue
            ref = DocumentRef(slug=slug, api_type=doc_type)
            result.extend(get_builder(doc_type).build_operations(copy.deepcopy(document), ref, ctx))
        return result

    async def resolve_version(self, version: str, package_id: str) -> Optional[ResolvedVersion]:
        self.calls.append(("version", version, package_id))
        if (version, package_id) in self.missing_versions or (version, package_id) not in self.documents:
            return None
        api_types = sorted({t for t, _ in self.documents[(version, package_id)].values()}, key=list(ApiType).index)
        return ResolvedVersion(version=version, package_id=package_id, api_types=api_types)

    async def resolve_operations(self, api_type, version, package_id, operation_ids=None):
        self.calls.append(("operations", api_type, version, package_id, operation_ids))
        operations = self.operations(api_type, version, package_id)
        if operation_ids is not None:
            operations = [op for op in operations if op.operation_id in operation_ids]
        return operations

    async def resolve_deprecated(self, api_type, version, package_id, operation_ids):
        self.calls.append(("deprecated", api_type, version, package_id, list(operation_ids)))
        if self.deprecated_unavailable:
            return None
        return [
            op for op in self.operations(api_type, version, package_id)
            if op.operation_id in operation_ids and op.has_deprecations
        ]

    async def resolve_raw_document(self, version, package_id, slug):
        self.calls.append(("document", version, package_id, slug))
        entry = self.documents.get((version, package_id), {}).get(slug)
        if entry is None:
            return None
        return json.dumps(entry[1]).encode("utf-8")

    def context(self, config: Optional[CompareConfig] = None) -> CompareContext:
        return CompareContext(
            resolve_version=self.resolve_version,
            resolve_operations=self.resolve_operations,
            resolve_deprecated=self.resolve_deprecated,
            resolve_raw_document=self.resolve_raw_document,
            config=config or CompareConfig(),
        )


def rest_document(paths: dict, **extra) -> dict:
    document = {"openapi": "3.0.0", "info": {"title": "Petstore", "version": "1"}, "paths": paths}
    document.update(extra)
    return document


def get_operation(responses_schema: Optional[dict] = None, **extra) -> dict:
    schema = responses_schema or {"type": "object", "properties": {"id": {"type": "integer"}}}
    operation = {
        "responses": {
            "200": {"description": "ok", "content": {"application/json": {"schema": schema}}},
        },
    }
    operation.update(extra)
    return operation


def pet_schema(status_deprecated: bool = False) -> dict:
    status = {"type": "string", "enum": ["available", "sold"]}
    if status_deprecated:
        status["deprecated"] = True
    return {
        "type": "object",
        "required": ["id"],
        "properties": {"id": {"type": "integer"}, "status": status},
    }


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()
