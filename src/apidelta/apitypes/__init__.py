"""Closed registry of API-type builders, one per ``ApiType``."""

from typing import Dict, Union

from apidelta.apitypes.asyncapi import AsyncApiBuilder
from apidelta.apitypes.base import ApiBuilder, BuildContext, DocumentCompareContext
from apidelta.apitypes.graphql import GraphQLApiBuilder
from apidelta.apitypes.rest import RestApiBuilder
from apidelta.apitypes.text import TextApiBuilder
from apidelta.apitypes.unknown import UnknownApiBuilder
from apidelta.kernel.operation import ApiType


BUILDERS: Dict[ApiType, ApiBuilder] = {
    ApiType.REST: RestApiBuilder(),
    ApiType.GRAPHQL: GraphQLApiBuilder(),
    ApiType.ASYNCAPI: AsyncApiBuilder(),
    ApiType.TEXT: TextApiBuilder(),
    ApiType.UNKNOWN: UnknownApiBuilder(),
}


def get_builder(api_type: Union[ApiType, str]) -> ApiBuilder:
    """Builder for ``api_type``; unrecognized types get the unknown builder."""
    try:
        return BUILDERS[ApiType(api_type)]
    except ValueError:
        return BUILDERS[ApiType.UNKNOWN]


__all__ = [
    "ApiBuilder",
    "BuildContext",
    "DocumentCompareContext",
    "BUILDERS",
    "get_builder",
]
