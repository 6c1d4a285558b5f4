"""Decode response bodies into entities and collections."""
from __future__ import annotations

from typing import Any, Dict, List

from .client import GraphDecodeError, GraphResponse


def _load(response: GraphResponse, operation: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise GraphDecodeError(
            response.status_code,
            str(exc),
            response.method,
            response.path,
            operation=operation,
        ) from exc


def decode_entity(response: GraphResponse, operation: str) -> Dict[str, Any]:
    """Decode a single JSON object."""
    data = _load(response, operation)
    if not isinstance(data, dict):
        raise GraphDecodeError(
            response.status_code,
            f"expected a JSON object, got {type(data).__name__}",
            response.method,
            response.path,
            operation=operation,
        )
    return data


def decode_collection(response: GraphResponse, operation: str) -> List[Dict[str, Any]]:
    """Unwrap a ``{"value": [...]}`` envelope, keeping the server's order."""
    envelope = decode_entity(response, operation)
    items = envelope.get("value")
    if not isinstance(items, list):
        raise GraphDecodeError(
            response.status_code,
            'expected a "value" array in the response envelope',
            response.method,
            response.path,
            operation=operation,
        )
    for item in items:
        if not isinstance(item, dict):
            raise GraphDecodeError(
                response.status_code,
                f"expected JSON objects in \"value\", got {type(item).__name__}",
                response.method,
                response.path,
                operation=operation,
            )
    return items
