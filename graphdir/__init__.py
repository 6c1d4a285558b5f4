"""Python client for the directory API's Domains collection."""

from .client import (
    GraphClient,
    GraphDecodeError,
    GraphError,
    GraphHTTPError,
    Uri,
    retry_on_404_consistency_failure,
)
from .domains import DomainsClient  # type: ignore
from . import odata, types

__all__ = [
    "GraphClient",
    "GraphError",
    "GraphHTTPError",
    "GraphDecodeError",
    "Uri",
    "retry_on_404_consistency_failure",
    "DomainsClient",
    "odata",
    "types",
]
