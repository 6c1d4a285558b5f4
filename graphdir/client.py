"""Core transport for the directory API.

``GraphClient`` owns the configuration (base URL, API version, tenant, token)
and a ``requests.Session``. Resource clients such as
:class:`~graphdir.domains.DomainsClient` describe each call with a :class:`Uri`,
the accepted status codes and an optional consistency-failure predicate, and
leave sending, retrying and paging to this module.

Two layers of retry exist:

- Transient failures (429 and 5xx, dropped connections) are retried by a
  ``urllib3`` ``Retry`` mounted on the session.
- Replication lag after a write is handled per call: when a response is not
  accepted and the call's predicate (for example
  :func:`retry_on_404_consistency_failure`) says so, the request is sent again
  after an exponential delay.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Callable, Collection, Dict, Mapping, NamedTuple, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .odata import Query, query_headers, query_values
from .types import APIError


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.microsoft.com"

VERSION_10 = "v1.0"
VERSION_BETA = "beta"

USER_AGENT = "graphdir-python"

TRANSIENT_STATUS_CODES = (429, 500, 502, 503, 504)

MAX_CONSISTENCY_DELAY = 30.0


class Uri(NamedTuple):
    """Path of an entity, optionally scoped to the configured tenant."""

    entity: str
    has_tenant_id: bool = True


class GraphResponse:
    """A fully read HTTP response.

    The underlying connection has already been released when this object is
    handed out, so it can be passed around and decoded freely.
    """

    def __init__(
        self,
        status_code: int,
        content: bytes,
        *,
        method: str,
        path: str,
        headers: Optional[Mapping[str, str]] = None,
        reason: str = "",
    ) -> None:
        self.status_code = status_code
        self.content = content
        self.method = method
        self.path = path
        self.headers = dict(headers or {})
        self.reason = reason

    def json(self) -> Any:
        """Parse the body. Raises ``ValueError`` on malformed JSON."""
        return json.loads(self.content)

    def __repr__(self) -> str:  # pragma: no cover - presentation only
        return f"<GraphResponse {self.method} {self.path} [{self.status_code}]>"


ConsistencyFailureFunc = Callable[[GraphResponse], bool]


def retry_on_404_consistency_failure(response: Optional[GraphResponse]) -> bool:
    """Treat a 404 as replication lag worth retrying."""
    return response is not None and response.status_code == 404


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class GraphError(Exception):
    """Base class for errors raised by this package.

    ``status_code`` is always set: it is the last status received, or ``0`` when
    no response arrived at all.
    """

    def __init__(
        self,
        status_code: int,
        method: str,
        path: str,
        *,
        operation: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self.method = method
        self.path = path
        self.operation = operation
        super().__init__(self.__str__())

    def _describe(self) -> str:
        return f"{self.method} {self.path} -> {self.status_code}"

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation}: {self._describe()}"
        return self._describe()

    def for_operation(self, operation: str) -> "GraphError":
        """Return a copy of this error attributed to ``operation``."""
        return GraphError(self.status_code, self.method, self.path, operation=operation)


class GraphHTTPError(GraphError):
    """The request failed or returned a status outside the accepted set."""

    def __init__(
        self,
        status_code: int,
        error: APIError,
        method: str,
        path: str,
        *,
        operation: Optional[str] = None,
    ) -> None:
        self.error = error
        super().__init__(status_code, method, path, operation=operation)

    def _describe(self) -> str:
        code = self.error.get("code", "UNKNOWN_ERROR")
        message = self.error.get("message", "")
        return f"{self.method} {self.path} -> {self.status_code} {code}: {message}"

    def for_operation(self, operation: str) -> "GraphHTTPError":
        return GraphHTTPError(
            self.status_code, self.error, self.method, self.path, operation=operation
        )


class GraphDecodeError(GraphError):
    """The response body could not be read or did not have the expected shape."""

    def __init__(
        self,
        status_code: int,
        reason: str,
        method: str,
        path: str,
        *,
        operation: Optional[str] = None,
    ) -> None:
        self.reason = reason
        super().__init__(status_code, method, path, operation=operation)

    def _describe(self) -> str:
        return (
            f"could not decode {self.method} {self.path} response "
            f"({self.status_code}): {self.reason}"
        )

    def for_operation(self, operation: str) -> "GraphDecodeError":
        return GraphDecodeError(
            self.status_code, self.reason, self.method, self.path, operation=operation
        )


def _error_payload(response: GraphResponse) -> APIError:
    default_error: APIError = {
        "code": "UNKNOWN_ERROR",
        "message": response.reason or "",
    }
    try:
        payload = response.json()
    except ValueError:
        return default_error
    if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
        error = payload["error"]
        return {
            "code": error.get("code", default_error["code"]),
            "message": error.get("message", default_error["message"]),
        }
    return default_error


def _build_session(max_retries: int) -> requests.Session:
    retry = Retry(
        total=max_retries,
        backoff_factor=0.5,
        status_forcelist=TRANSIENT_STATUS_CODES,
        allowed_methods=None,
        respect_retry_after_header=True,
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session = requests.Session()
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


class GraphClient:
    """Directory API client.

    Parameters
    ----------
    token:
        Bearer token for the API. If not provided, the client reads
        ``GRAPH_ACCESS_TOKEN`` from the environment.
    tenant_id:
        Tenant the requests are scoped to. Falls back to ``GRAPH_TENANT_ID``.
        When neither is set, tenant scoped paths are sent without a tenant
        segment.
    url:
        Optional base URL for the API (useful for testing). Falls back to
        ``GRAPH_BASE_URL`` and then to :data:`DEFAULT_BASE_URL`.
    api_version:
        ``"v1.0"`` or ``"beta"``.
    session:
        Reusable ``requests.Session``. When omitted, a session with a retry
        adapter for transient failures is created.
    consistency_attempts, consistency_delay:
        Total attempts and initial delay (seconds) for calls that carry a
        consistency-failure predicate.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        tenant_id: Optional[str] = None,
        url: Optional[str] = None,
        *,
        api_version: str = VERSION_10,
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        consistency_attempts: int = 8,
        consistency_delay: float = 1.0,
    ) -> None:
        self.token = token or os.getenv("GRAPH_ACCESS_TOKEN")
        if not self.token:
            raise ValueError("Missing access token. Pass it to GraphClient('eyJ0...')")

        self.tenant_id = tenant_id or os.getenv("GRAPH_TENANT_ID")

        base = os.getenv("GRAPH_BASE_URL") or DEFAULT_BASE_URL
        if url:
            base = url
        self.api_version = api_version
        self.url = f"{base.rstrip('/')}/{api_version}"

        self.headers = {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

        self.timeout = timeout
        self.consistency_attempts = max(1, consistency_attempts)
        self.consistency_delay = consistency_delay
        self._session = session or _build_session(max_retries)

        self.domains = DomainsClient(self)

    # ------------------------------------------------------------------
    # Internal request helpers
    # ------------------------------------------------------------------
    def build_url(self, uri: Uri) -> str:
        if uri.has_tenant_id and self.tenant_id:
            return f"{self.url}/{self.tenant_id}{uri.entity}"
        return f"{self.url}{uri.entity}"

    def _send(
        self,
        method: str,
        url: str,
        path: str,
        *,
        headers: Dict[str, str],
        params: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
    ) -> GraphResponse:
        """Send one request and read the whole body before returning.

        The body is streamed: a failure while reading it is a
        ``GraphDecodeError`` carrying the status code already received.
        """
        logger.debug("%s %s", method, url)
        try:
            resp = self._session.request(
                method,
                url,
                headers=headers,
                params=params or None,
                json=body,
                timeout=self.timeout,
                stream=True,
            )
        except requests.RequestException as exc:
            raise GraphHTTPError(
                0, {"code": "REQUEST_FAILED", "message": str(exc)}, method, path
            ) from exc

        try:
            content = resp.content
        except requests.RequestException as exc:
            raise GraphDecodeError(resp.status_code, str(exc), method, path) from exc
        finally:
            resp.close()

        logger.debug("%s %s -> %s", method, url, resp.status_code)
        return GraphResponse(
            resp.status_code,
            content or b"",
            method=method,
            path=path,
            headers=resp.headers,
            reason=resp.reason or "",
        )

    def _request(
        self,
        method: str,
        uri: Uri,
        *,
        valid_status_codes: Collection[int],
        query: Optional[Query] = None,
        body: Optional[Any] = None,
        consistency_failure_func: Optional[ConsistencyFailureFunc] = None,
        disable_paging: bool = False,
    ) -> Tuple[GraphResponse, int]:
        url = self.build_url(uri)
        headers = {**self.headers, **query_headers(query)}
        params = query_values(query)

        attempt = 0
        while True:
            attempt += 1
            response = self._send(
                method, url, uri.entity, headers=headers, params=params, body=body
            )
            if response.status_code in valid_status_codes:
                break
            if (
                consistency_failure_func is None
                or attempt >= self.consistency_attempts
                or not consistency_failure_func(response)
            ):
                raise GraphHTTPError(
                    response.status_code, _error_payload(response), method, uri.entity
                )
            delay = min(self.consistency_delay * 2 ** (attempt - 1), MAX_CONSISTENCY_DELAY)
            logger.warning(
                "%s %s returned %s, retrying in %.1fs (attempt %d of %d)",
                method,
                uri.entity,
                response.status_code,
                delay,
                attempt,
                self.consistency_attempts,
            )
            time.sleep(delay)

        if method == "GET" and not disable_paging:
            response = self._follow_pages(response, headers, valid_status_codes)
        return response, response.status_code

    def _follow_pages(
        self,
        first: GraphResponse,
        headers: Dict[str, str],
        valid_status_codes: Collection[int],
    ) -> GraphResponse:
        """Merge every page of a collection into a single ``value`` envelope."""
        try:
            payload = first.json()
        except ValueError:
            # Left for the caller's decode step to report.
            return first
        if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
            return first
        next_link = payload.get("@odata.nextLink")
        if not next_link:
            return first

        values = list(payload["value"])
        while next_link:
            # nextLink is absolute and already carries the query string
            page = self._send("GET", next_link, first.path, headers=headers)
            if page.status_code not in valid_status_codes:
                raise GraphHTTPError(
                    page.status_code, _error_payload(page), "GET", first.path
                )
            try:
                page_payload = page.json()
            except ValueError as exc:
                raise GraphDecodeError(page.status_code, str(exc), "GET", first.path) from exc
            if not isinstance(page_payload, dict) or not isinstance(
                page_payload.get("value"), list
            ):
                raise GraphDecodeError(
                    page.status_code, "page is not a collection", "GET", first.path
                )
            values.extend(page_payload["value"])
            next_link = page_payload.get("@odata.nextLink")

        logger.debug("Merged %d items from paged %s", len(values), first.path)
        merged = {k: v for k, v in payload.items() if k != "@odata.nextLink"}
        merged["value"] = values
        return GraphResponse(
            first.status_code,
            json.dumps(merged).encode("utf-8"),
            method=first.method,
            path=first.path,
            headers=first.headers,
            reason=first.reason,
        )

    # ------------------------------------------------------------------
    # HTTP verb helpers
    # ------------------------------------------------------------------
    def get(
        self,
        uri: Uri,
        *,
        valid_status_codes: Collection[int] = (200,),
        query: Optional[Query] = None,
        consistency_failure_func: Optional[ConsistencyFailureFunc] = None,
        disable_paging: bool = False,
    ) -> Tuple[GraphResponse, int]:
        return self._request(
            "GET",
            uri,
            valid_status_codes=valid_status_codes,
            query=query,
            consistency_failure_func=consistency_failure_func,
            disable_paging=disable_paging,
        )

    def post(
        self,
        uri: Uri,
        body: Optional[Any] = None,
        *,
        valid_status_codes: Collection[int] = (200, 201),
        query: Optional[Query] = None,
        consistency_failure_func: Optional[ConsistencyFailureFunc] = None,
    ) -> Tuple[GraphResponse, int]:
        return self._request(
            "POST",
            uri,
            body=body,
            valid_status_codes=valid_status_codes,
            query=query,
            consistency_failure_func=consistency_failure_func,
        )

    def patch(
        self,
        uri: Uri,
        body: Any,
        *,
        valid_status_codes: Collection[int] = (200, 204),
        query: Optional[Query] = None,
        consistency_failure_func: Optional[ConsistencyFailureFunc] = None,
    ) -> Tuple[GraphResponse, int]:
        return self._request(
            "PATCH",
            uri,
            body=body,
            valid_status_codes=valid_status_codes,
            query=query,
            consistency_failure_func=consistency_failure_func,
        )

    def delete(
        self,
        uri: Uri,
        *,
        valid_status_codes: Collection[int] = (204,),
        consistency_failure_func: Optional[ConsistencyFailureFunc] = None,
    ) -> Tuple[GraphResponse, int]:
        return self._request(
            "DELETE",
            uri,
            valid_status_codes=valid_status_codes,
            consistency_failure_func=consistency_failure_func,
        )


# Import here to avoid circular dependency during type checking
from .domains import DomainsClient  # noqa: E402  pylint: disable=wrong-import-position
