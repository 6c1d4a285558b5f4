"""Client for the `/domains` collection and its verification actions."""
from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Tuple

from .client import GraphError, GraphResponse, Uri, retry_on_404_consistency_failure
from .decoding import decode_collection, decode_entity
from .odata import METADATA_FULL, Query
from .types import Domain, DomainList, DomainVerificationDnsRecord


logger = logging.getLogger(__name__)


class DomainsClient:
    """Client for `/domains` endpoints.

    Every method returns the HTTP status code as the last element of its
    result. Failures raise :class:`~graphdir.client.GraphHTTPError` or
    :class:`~graphdir.client.GraphDecodeError` naming the method that failed.
    """

    def __init__(self, client: "GraphClient") -> None:
        self.client = client

    def _call(
        self, operation: str, verb: Callable[..., Tuple[GraphResponse, int]], *args: Any, **kwargs: Any
    ) -> Tuple[GraphResponse, int]:
        try:
            return verb(*args, **kwargs)
        except GraphError as exc:
            raise exc.for_operation(f"DomainsClient.{operation}") from exc

    def list(self, query: Optional[Query] = None) -> Tuple[DomainList, int]:
        response, status = self._call(
            "list",
            self.client.get,
            Uri("/domains"),
            query=query,
            valid_status_codes=(200,),
        )
        return decode_collection(response, "DomainsClient.list"), status  # type: ignore[return-value]

    def get(self, domain_id: str, query: Optional[Query] = None) -> Tuple[Domain, int]:
        response, status = self._call(
            "get",
            self.client.get,
            Uri(f"/domains/{domain_id}"),
            query=query,
            valid_status_codes=(200,),
            consistency_failure_func=retry_on_404_consistency_failure,
        )
        return decode_entity(response, "DomainsClient.get"), status  # type: ignore[return-value]

    def create(self, domain_id: str) -> Tuple[Domain, int]:
        """Add ``domain_id`` (a domain name) to the tenant."""
        payload: Domain = {"id": domain_id}
        response, status = self._call(
            "create",
            self.client.post,
            Uri("/domains"),
            payload,
            query={"metadata": METADATA_FULL},
            valid_status_codes=(201,),
        )
        logger.info("Created domain %s", domain_id)
        return decode_entity(response, "DomainsClient.create"), status  # type: ignore[return-value]

    def update(self, domain: Domain) -> int:
        """Patch the writable properties of ``domain``; ``domain["id"]`` selects it."""
        domain_id = domain.get("id")
        if not domain_id:
            raise ValueError("Cannot update a domain without an id")
        body = {k: v for k, v in domain.items() if k != "id"}
        _, status = self._call(
            "update",
            self.client.patch,
            Uri(f"/domains/{domain_id}"),
            body,
            valid_status_codes=(204,),
            consistency_failure_func=retry_on_404_consistency_failure,
        )
        return status

    def delete(self, domain_id: str) -> int:
        _, status = self._call(
            "delete",
            self.client.delete,
            Uri(f"/domains/{domain_id}"),
            valid_status_codes=(204,),
            consistency_failure_func=retry_on_404_consistency_failure,
        )
        logger.info("Deleted domain %s", domain_id)
        return status

    def get_verification_dns_records(
        self, domain_name: str, query: Optional[Query] = None
    ) -> Tuple[DomainVerificationDnsRecord, int]:
        """Fetch the DNS records that prove ownership of ``domain_name``."""
        response, status = self._call(
            "get_verification_dns_records",
            self.client.get,
            Uri(f"/domains/{domain_name}/verificationDnsRecords"),
            query=query,
            valid_status_codes=(200,),
            consistency_failure_func=retry_on_404_consistency_failure,
        )
        record = decode_entity(response, "DomainsClient.get_verification_dns_records")
        return record, status  # type: ignore[return-value]

    def verify_domain(self, domain_id: str) -> Tuple[Domain, int]:
        """Ask the service to check the published DNS records.

        An unverified domain is still a 200; inspect ``isVerified`` on the
        returned domain.
        """
        response, status = self._call(
            "verify_domain",
            self.client.post,
            Uri(f"/domains/{domain_id}/verify"),
            valid_status_codes=(200,),
            consistency_failure_func=retry_on_404_consistency_failure,
        )
        return decode_entity(response, "DomainsClient.verify_domain"), status  # type: ignore[return-value]


from .client import GraphClient  # noqa: E402  pylint: disable=wrong-import-position
