"""Comparison configuration."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_BATCH_SIZE = 32


class VersionStatus(str, Enum):
    """Publication status of the version being built."""
    RELEASE = "release"
    DRAFT = "draft"
    ARCHIVED = "archived"
    RELEASE_CANDIDATE = "release-candidate"
    NONE = ""  # changelog-only builds


class CompareConfig(BaseModel):
    """Settings for one comparison run.

    ``previous_group``/``current_group`` enable prefix-group changelog mode:
    operations under the previous prefix are compared against operations
    under the current prefix, with the prefixes stripped.
    """
    batch_size: int = Field(DEFAULT_BATCH_SIZE, gt=0, description="Operation ids per resolver call")
    previous_group: Optional[str] = None
    current_group: Optional[str] = None
    status: VersionStatus = VersionStatus.NONE

    model_config = ConfigDict(extra="forbid")

    @property
    def prefix_mode(self) -> bool:
        return bool(self.previous_group or self.current_group)
