import json
from unittest.mock import MagicMock

import pytest
import requests
from urllib3.exceptions import ProtocolError

from graphdir import DomainsClient, GraphClient, GraphDecodeError, GraphHTTPError

from conftest import BASE_URL, TENANT_ID, make_response


DOMAINS_URL = f"{BASE_URL}/v1.0/{TENANT_ID}/domains"


def _sent(session: MagicMock, index: int = 0):
    call = session.request.call_args_list[index]
    method, url = call.args
    return method, url, call.kwargs


def test_client_exposes_domains_resource(client: GraphClient) -> None:
    assert isinstance(client.domains, DomainsClient)
    assert client.domains.client is client


def test_list_unwraps_envelope_in_order(client: GraphClient, session: MagicMock) -> None:
    session.request.return_value = make_response(
        200, {"value": [{"id": "a.com"}, {"id": "b.com"}]}
    )

    domains, status = client.domains.list()

    assert status == 200
    assert [d["id"] for d in domains] == ["a.com", "b.com"]
    method, url, kwargs = _sent(session)
    assert method == "GET"
    assert url == DOMAINS_URL
    assert kwargs["params"] is None
    assert kwargs["json"] is None
    assert kwargs["headers"]["Authorization"] == "Bearer token-123"
    assert kwargs["stream"] is True


def test_list_passes_query_options_through(client: GraphClient, session: MagicMock) -> None:
    session.request.return_value = make_response(200, {"value": []})

    domains, _ = client.domains.list(
        {"filter": "isVerified eq true", "select": ["id", "isDefault"], "consistency_level": "eventual"}
    )

    assert domains == []
    _, _, kwargs = _sent(session)
    assert kwargs["params"] == {"$filter": "isVerified eq true", "$select": "id,isDefault"}
    assert kwargs["headers"]["ConsistencyLevel"] == "eventual"


def test_list_does_not_retry_not_found(client: GraphClient, session: MagicMock, sleeps: MagicMock) -> None:
    session.request.return_value = make_response(404, {"error": {"code": "NotFound", "message": "gone"}})

    with pytest.raises(GraphHTTPError) as exc:
        client.domains.list()

    assert exc.value.status_code == 404
    assert session.request.call_count == 1
    sleeps.assert_not_called()


def test_list_rejects_body_without_envelope(client: GraphClient, session: MagicMock) -> None:
    session.request.return_value = make_response(200, [{"id": "a.com"}])

    with pytest.raises(GraphDecodeError) as exc:
        client.domains.list()

    assert exc.value.status_code == 200
    assert exc.value.operation == "DomainsClient.list"


def test_get_retries_not_found_until_consistent(
    client: GraphClient, session: MagicMock, sleeps: MagicMock
) -> None:
    session.request.side_effect = [
        make_response(404),
        make_response(404),
        make_response(200, {"id": "contoso.com", "isVerified": True}),
    ]

    domain, status = client.domains.get("contoso.com")

    assert status == 200
    assert domain["id"] == "contoso.com"
    assert session.request.call_count == 3
    assert [c.args[0] for c in sleeps.call_args_list] == [1.0, 2.0]
    _, url, _ = _sent(session, 2)
    assert url == f"{DOMAINS_URL}/contoso.com"


def test_get_malformed_json_is_decode_error(client: GraphClient, session: MagicMock) -> None:
    session.request.return_value = make_response(200, raw=b"{not json")

    with pytest.raises(GraphDecodeError) as exc:
        client.domains.get("contoso.com")

    assert not isinstance(exc.value, GraphHTTPError)
    assert exc.value.status_code == 200
    assert str(exc.value).startswith("DomainsClient.get: ")


def test_unreadable_body_is_decode_error_with_status(client: GraphClient, session: MagicMock) -> None:
    resp = requests.Response()
    resp.status_code = 200
    resp.raw = MagicMock()
    resp.raw.stream.side_effect = ProtocolError("Connection broken: IncompleteRead(9 bytes read, 7 more expected)")
    session.request.return_value = resp

    with pytest.raises(GraphDecodeError) as exc:
        client.domains.get("contoso.com")

    assert not isinstance(exc.value, GraphHTTPError)
    assert exc.value.status_code == 200
    assert exc.value.operation == "DomainsClient.get"
    assert "IncompleteRead" in exc.value.reason
    resp.raw.close.assert_called_once()


def test_forbidden_propagates_exact_status(client: GraphClient, session: MagicMock) -> None:
    session.request.return_value = make_response(
        403,
        {"error": {"code": "Authorization_RequestDenied", "message": "Insufficient privileges"}},
    )

    with pytest.raises(GraphHTTPError) as exc:
        client.domains.get("contoso.com")

    err = exc.value
    assert err.status_code == 403
    assert err.operation == "DomainsClient.get"
    assert err.error["code"] == "Authorization_RequestDenied"
    assert session.request.call_count == 1
    assert "403 Authorization_RequestDenied: Insufficient privileges" in str(err)
    assert isinstance(err.__cause__, GraphHTTPError)


def test_network_failure_reports_zero_status(client: GraphClient, session: MagicMock) -> None:
    session.request.side_effect = requests.ConnectionError("connection reset")

    with pytest.raises(GraphHTTPError) as exc:
        client.domains.delete("contoso.com")

    assert exc.value.status_code == 0
    assert exc.value.operation == "DomainsClient.delete"
    assert exc.value.error["code"] == "REQUEST_FAILED"


def test_create_then_get_returns_same_id(client: GraphClient, session: MagicMock) -> None:
    created = {"id": "contoso.com", "isVerified": False, "authenticationType": "Managed"}
    session.request.side_effect = [make_response(201, created), make_response(200, created)]

    domain, status = client.domains.create("contoso.com")
    fetched, _ = client.domains.get("contoso.com")

    assert status == 201
    assert domain["id"] == fetched["id"] == "contoso.com"
    method, url, kwargs = _sent(session)
    assert method == "POST"
    assert url == DOMAINS_URL
    assert kwargs["json"] == {"id": "contoso.com"}
    assert kwargs["headers"]["Accept"] == "application/json;odata.metadata=full"


def test_create_does_not_retry_not_found(client: GraphClient, session: MagicMock, sleeps: MagicMock) -> None:
    session.request.return_value = make_response(404)

    with pytest.raises(GraphHTTPError):
        client.domains.create("contoso.com")

    assert session.request.call_count == 1
    sleeps.assert_not_called()


def test_create_requires_created_status(client: GraphClient, session: MagicMock) -> None:
    session.request.return_value = make_response(200, {"id": "contoso.com"})

    with pytest.raises(GraphHTTPError) as exc:
        client.domains.create("contoso.com")

    assert exc.value.status_code == 200


def test_delete_then_get_eventually_not_found(
    client: GraphClient, session: MagicMock, sleeps: MagicMock
) -> None:
    session.request.side_effect = [make_response(204)] + [make_response(404)] * 3

    assert client.domains.delete("contoso.com") == 204
    with pytest.raises(GraphHTTPError) as exc:
        client.domains.get("contoso.com")

    assert exc.value.status_code == 404
    # one delete plus every consistency attempt of the get
    assert session.request.call_count == 4
    method, url, _ = _sent(session)
    assert (method, url) == ("DELETE", f"{DOMAINS_URL}/contoso.com")


def test_delete_retries_not_found(client: GraphClient, session: MagicMock, sleeps: MagicMock) -> None:
    session.request.side_effect = [make_response(404), make_response(204)]

    assert client.domains.delete("contoso.com") == 204
    assert sleeps.call_count == 1


def test_get_verification_dns_records(client: GraphClient, session: MagicMock) -> None:
    record = {
        "id": "aceff52c-06a5-447f-ac5f-256ad243cc5c",
        "isOptional": False,
        "label": "contoso.com",
        "recordType": "Txt",
        "ttl": 3600,
        "text": "MS=ms12345678",
    }
    session.request.return_value = make_response(200, record)

    result, status = client.domains.get_verification_dns_records("contoso.com", {"select": ["text"]})

    assert status == 200
    assert result["text"] == "MS=ms12345678"
    _, url, kwargs = _sent(session)
    assert url == f"{DOMAINS_URL}/contoso.com/verificationDnsRecords"
    assert kwargs["params"] == {"$select": "text"}


def test_verify_domain_returns_unverified_domain(client: GraphClient, session: MagicMock) -> None:
    session.request.return_value = make_response(200, {"id": "contoso.com", "isVerified": False})

    domain, status = client.domains.verify_domain("contoso.com")

    assert status == 200
    assert domain["isVerified"] is False
    method, url, kwargs = _sent(session)
    assert method == "POST"
    assert url == f"{DOMAINS_URL}/contoso.com/verify"
    assert kwargs["json"] is None


def test_update_sends_writable_fields(client: GraphClient, session: MagicMock) -> None:
    session.request.return_value = make_response(204)
    domain = {"id": "contoso.com", "isDefault": True}

    status = client.domains.update(domain)

    assert status == 204
    assert domain == {"id": "contoso.com", "isDefault": True}
    method, url, kwargs = _sent(session)
    assert method == "PATCH"
    assert url == f"{DOMAINS_URL}/contoso.com"
    assert kwargs["json"] == {"isDefault": True}


def test_update_requires_id(client: GraphClient, session: MagicMock) -> None:
    with pytest.raises(ValueError):
        client.domains.update({"isDefault": True})

    session.request.assert_not_called()


def test_fetched_domain_is_the_decoded_body(client: GraphClient, session: MagicMock) -> None:
    body = {"id": "contoso.com", "state": {"status": "Scheduled", "operation": "ForceDelete"}}
    session.request.return_value = make_response(200, body)

    domain, _ = client.domains.get("contoso.com")

    assert domain == json.loads(json.dumps(body))
