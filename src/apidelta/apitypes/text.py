"""Plain-text documents: no operations, nothing to compare."""

from apidelta.apitypes.base import ApiBuilder
from apidelta.kernel.operation import ApiType


class TextApiBuilder(ApiBuilder):
    api_type = ApiType.TEXT
