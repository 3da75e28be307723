"""Exceptions raised by a comparison run."""

from apidelta.kernel.hash_utils import CanonicalizationError


class ComparisonError(RuntimeError):
    """A comparison cannot continue (an operation pair resolves to nothing)."""
    pass


__all__ = ["ComparisonError", "CanonicalizationError"]
