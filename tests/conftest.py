"""
Pytest configuration and shared fixtures.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from unittest.mock import MagicMock, patch

import pytest
import requests

from sap_b1sl.core.config import ServiceLayerConfig


T0 = datetime(2024, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock returning a fixed instant."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now = self.now + timedelta(minutes=minutes)


def make_response(
    status: int = 200,
    body: Any = None,
    *,
    text: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    url: str = "https://b1.test:50000/b1s/v2/Orders",
    reason: str = "",
) -> requests.Response:
    """Build a real requests.Response without touching the network."""
    r = requests.Response()
    r.status_code = status
    r.reason = reason
    r.url = url
    if body is not None:
        r._content = json.dumps(body).encode("utf-8")
        r.headers["Content-Type"] = "application/json;odata.metadata=minimal"
    elif text is not None:
        r._content = text.encode("utf-8")
        r.headers["Content-Type"] = "text/plain"
    else:
        r._content = b""
    if headers:
        r.headers.update(headers)
    r.request = requests.Request("GET", url).prepare()
    return r


def login_response(session_id: str = "sess-1", timeout: int = 30) -> requests.Response:
    return make_response(
        200,
        {"SessionId": session_id, "SessionTimeout": timeout, "Version": "1000190"},
        url="https://b1.test:50000/b1s/v2/Login",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return ServiceLayerConfig(
        host="https://b1.test",
        port=50000,
        company="SBODEMOUS",
        username="manager",
        password="secret",
    )


@pytest.fixture
def transport():
    """Patch requests.Session; logins succeed with a 30 minute timeout."""
    with patch("sap_b1sl.core.session.requests.Session") as mock_session_class:
        mock_transport = MagicMock()
        mock_transport.headers = {}
        mock_transport.post.return_value = login_response()
        mock_session_class.return_value = mock_transport
        yield mock_transport


@pytest.fixture
def sample_page():
    """Single Service Layer list page without continuation."""
    return {
        "@odata.context": "$metadata#Items",
        "value": [
            {"ItemCode": "A0001", "ItemName": "Printer"},
            {"ItemCode": "A0002", "ItemName": "Toner"},
        ],
    }
