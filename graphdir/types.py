"""TypedDict models for the directory API.

Shapes of the Domains payloads, for editor completion and type checking only.
Responses are returned as the plain dicts the JSON decoder produces.
"""

from __future__ import annotations

from typing import List, Optional, TypedDict
from typing_extensions import Literal

# ---------------------------------------------------------------------------
# Domains
# ---------------------------------------------------------------------------

DomainAuthenticationType = Literal["Federated", "Managed"]

DomainAvailabilityStatus = Literal[
    "AvailableImmediately",
    "EmailVerifiedDomainTakeoverScheduled",
]

DomainStateOperation = Literal["ForceDelete", "SetToFederated", "SetToManaged"]

DomainStateStatus = Literal["Failed", "InProgress", "Scheduled"]

DomainService = Literal[
    "Email",
    "Sharepoint",
    "EmailInternalRelayOnly",
    "OfficeCommunicationsOnline",
    "SharePointDefaultDomain",
    "FullRedelegation",
    "SharePointPublic",
    "OrgIdAuthentication",
    "Yammer",
    "Intune",
]


class DomainState(TypedDict, total=False):
    lastActionDateTime: Optional[str]
    operation: Optional[DomainStateOperation]
    status: Optional[DomainStateStatus]


class Domain(TypedDict, total=False):
    id: str
    authenticationType: DomainAuthenticationType
    availabilityStatus: Optional[DomainAvailabilityStatus]
    isAdminManaged: bool
    isDefault: bool
    isInitial: bool
    isRoot: bool
    isVerified: bool
    passwordNotificationWindowInDays: Optional[int]
    passwordValidityPeriodInDays: Optional[int]
    supportedServices: List[DomainService]
    state: Optional[DomainState]


DomainList = List[Domain]


DnsRecordType = Literal["Txt", "Mx", "CName", "Srv"]


class DomainVerificationDnsRecord(TypedDict, total=False):
    id: str
    isOptional: bool
    label: str
    recordType: DnsRecordType
    supportedService: Optional[DomainService]
    ttl: int
    # Txt
    text: str
    # Mx
    mailExchange: str
    preference: Optional[int]


# ---------------------------------------------------------------------------
# Common
# ---------------------------------------------------------------------------


class APIError(TypedDict, total=False):
    code: str
    message: str
