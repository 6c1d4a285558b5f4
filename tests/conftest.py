from __future__ import annotations

import json
from typing import Any, Optional
from unittest.mock import MagicMock, patch

import pytest
import requests

from graphdir import GraphClient


BASE_URL = "https://graph.test"
TENANT_ID = "tenant-1"


def make_response(status: int, body: Any = None, *, raw: Optional[bytes] = None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    if raw is not None:
        resp._content = raw
    elif body is not None:
        resp._content = json.dumps(body).encode("utf-8")
        resp.headers["Content-Type"] = "application/json"
    else:
        resp._content = b""
    resp._content_consumed = True
    resp.reason = ""
    return resp


@pytest.fixture
def session() -> MagicMock:
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session: MagicMock) -> GraphClient:
    return GraphClient(
        "token-123",
        TENANT_ID,
        BASE_URL,
        session=session,
        consistency_attempts=3,
        consistency_delay=1.0,
    )


@pytest.fixture
def sleeps():
    with patch("graphdir.client.time.sleep") as mock_sleep:
        yield mock_sleep
