"""Documents of unrecognized type: carried through without operations."""

from apidelta.apitypes.base import ApiBuilder
from apidelta.kernel.operation import ApiType


class UnknownApiBuilder(ApiBuilder):
    api_type = ApiType.UNKNOWN
