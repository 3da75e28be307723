"""apidelta: compatibility analysis of API versions (REST, GraphQL, AsyncAPI)."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("apidelta")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from apidelta.api import CompareContext, build_operations, compare_versions, compare_versions_dto
from apidelta.codes import MessageSeverity, Notifications
from apidelta.config import CompareConfig, VersionStatus
from apidelta.contracts import VersionsComparisonDto
from apidelta.errors import ComparisonError

__all__ = [
    "__version__",
    "CompareContext",
    "CompareConfig",
    "VersionStatus",
    "build_operations",
    "compare_versions",
    "compare_versions_dto",
    "VersionsComparisonDto",
    "Notifications",
    "MessageSeverity",
    "ComparisonError",
]
