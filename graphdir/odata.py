"""OData query options.

A :class:`Query` is a plain dict of options passed through to the service
untouched. The helpers below render it to query-string values and request
headers; neither mutates the query.
"""
from __future__ import annotations

from typing import Dict, List, Optional, TypedDict, Union
from typing_extensions import Literal

Metadata = Literal["full", "minimal", "none"]

ConsistencyLevel = Literal["eventual"]

METADATA_FULL: Metadata = "full"
METADATA_MINIMAL: Metadata = "minimal"
METADATA_NONE: Metadata = "none"

CONSISTENCY_LEVEL_EVENTUAL: ConsistencyLevel = "eventual"


class Query(TypedDict, total=False):
    filter: str
    select: List[str]
    expand: Union[str, List[str]]
    order_by: str
    search: str
    top: int
    skip: int
    count: bool
    metadata: Metadata
    consistency_level: ConsistencyLevel


def query_values(query: Optional[Query]) -> Dict[str, str]:
    """Return the ``$``-prefixed query-string parameters for ``query``."""
    if not query:
        return {}

    params: Dict[str, str] = {}
    if query.get("filter"):
        params["$filter"] = query["filter"]
    if query.get("select"):
        params["$select"] = ",".join(query["select"])
    expand = query.get("expand")
    if expand:
        params["$expand"] = expand if isinstance(expand, str) else ",".join(expand)
    if query.get("order_by"):
        params["$orderby"] = query["order_by"]
    if query.get("search"):
        # $search terms must be double quoted
        params["$search"] = f'"{query["search"]}"'
    if query.get("top"):
        params["$top"] = str(query["top"])
    if query.get("skip"):
        params["$skip"] = str(query["skip"])
    if query.get("count"):
        params["$count"] = "true"
    return params


def query_headers(query: Optional[Query]) -> Dict[str, str]:
    """Return the request headers implied by ``query``."""
    headers: Dict[str, str] = {"Accept": "application/json"}
    if not query:
        return headers

    metadata = query.get("metadata")
    if metadata:
        headers["Accept"] = f"application/json;odata.metadata={metadata}"
    consistency_level = query.get("consistency_level")
    if consistency_level:
        headers["ConsistencyLevel"] = consistency_level
    return headers
