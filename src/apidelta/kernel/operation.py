"""Operation and deprecation records exchanged with the surrounding builder."""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ApiType(str, Enum):
    """Closed set of API dialects a document can belong to."""
    REST = "rest"
    GRAPHQL = "graphql"
    ASYNCAPI = "asyncapi"
    TEXT = "text"
    UNKNOWN = "unknown"


class ApiKind(str, Enum):
    """Compatibility kind declared for an operation."""
    BWC = "bwc"
    NO_BWC = "no-bwc"
    EXPERIMENTAL = "experimental"


class ApiAudience(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"
    UNKNOWN = "unknown"


class DeprecateItem(BaseModel):
    """One deprecated element inside an operation.

    ``deprecated_in_previous_versions`` lists earlier versions in which this
    exact element was already deprecated, oldest first. Propagation prepends
    to it and it is the only part of the record edited after construction.
    """
    declaration_json_paths: List[List[Union[str, int]]] = Field(default_factory=list)
    description: str = ""
    deprecated_info: Optional[str] = None  # deprecation reason (x-deprecated-meta)
    hash: Optional[str] = None
    tolerant_hash: Optional[str] = None
    is_operation: bool = False  # the item is the operation itself, not a nested element
    deprecated_in_previous_versions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class DocumentRef(BaseModel):
    """Document that declares one or more operations.

    ``slug`` identifies the document within one version; the normalized tree
    itself is fetched on demand through the raw-document resolver.
    """
    slug: str
    api_type: ApiType
    file_id: str = ""
    title: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)


class Operation(BaseModel):
    """A single API operation of one version.

    ``metadata`` carries the dialect coordinates: ``path``/``method`` (and
    optionally ``base_path``) for REST, ``action``/``channel`` for AsyncAPI,
    ``type``/``method`` for GraphQL.
    """
    operation_id: str
    api_type: ApiType
    api_kind: ApiKind = ApiKind.BWC
    api_audience: ApiAudience = ApiAudience.EXTERNAL
    title: str = ""
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    deprecated: bool = False
    deprecated_info: Optional[str] = None
    deprecated_items: List[DeprecateItem] = Field(default_factory=list)
    deprecated_in_previous_versions: List[str] = Field(default_factory=list)
    document: Optional[DocumentRef] = None

    model_config = ConfigDict(extra="forbid")

    @property
    def has_deprecations(self) -> bool:
        return self.deprecated or bool(self.deprecated_items)


class OperationPair(BaseModel):
    """Previous/current occurrence of one logical operation. At least one side is set."""
    previous: Optional[Operation] = None
    current: Optional[Operation] = None

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _check_sides(self) -> "OperationPair":
        if self.previous is None and self.current is None:
            raise ValueError("OperationPair requires at least one side")
        return self

    @property
    def operation_id(self) -> str:
        side = self.current if self.current is not None else self.previous
        return side.operation_id

    @property
    def api_type(self) -> ApiType:
        side = self.current if self.current is not None else self.previous
        return side.api_type

    @property
    def is_added(self) -> bool:
        return self.previous is None

    @property
    def is_removed(self) -> bool:
        return self.current is None


class VersionRef(BaseModel):
    """One endpoint of a comparison. ``version`` may carry a revision as ``1.2@3``."""
    version: str
    package_id: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class ResolvedVersion(BaseModel):
    """What the version resolver knows about a published version."""
    version: str
    package_id: str
    api_types: List[ApiType] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")
