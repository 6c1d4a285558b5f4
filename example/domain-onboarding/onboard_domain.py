"""Add a custom domain, print the DNS record to publish, then try to verify it.

Usage::

    GRAPH_ACCESS_TOKEN=... GRAPH_TENANT_ID=... python onboard_domain.py contoso.com
"""
from __future__ import annotations

import logging
import sys

from graphdir import GraphClient  # type: ignore[import-not-found]


def main(domain_name: str) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    client = GraphClient()

    # get() treats 404 as replication lag, so look the domain up with a filter
    existing, _ = client.domains.list({"filter": f"id eq '{domain_name}'"})
    if existing:
        domain = existing[0]
        print(f"{domain_name} already exists")
    else:
        domain, status = client.domains.create(domain_name)
        print(f"Created {domain['id']} ({status})")

    if domain.get("isVerified"):
        print("Domain is already verified")
        return 0

    records, _ = client.domains.get_verification_dns_records(domain_name)
    # the service answers with a {"value": [...]} collection
    record = records.get("value", [records])[0]
    print("Publish this record, then run the script again:")
    print(f"  {record.get('recordType')} {record.get('label')} {record.get('text', '')}")

    domain, _ = client.domains.verify_domain(domain_name)
    print("Verified" if domain.get("isVerified") else "Not verified yet")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1]))
