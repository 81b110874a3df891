"""Tests for the rate limiter's client key."""

import pytest
from starlette.requests import Request

from marketplace.core.config import settings
from marketplace.core.rate_limit import client_address


def _request(headers: dict[str, str]) -> Request:
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": "/",
            "headers": [(name.lower().encode(), value.encode()) for name, value in headers.items()],
            "client": ("10.0.0.5", 5000),
        }
    )


@pytest.mark.unit
def test_forwarded_headers_ignored_without_proxy(monkeypatch):
    monkeypatch.setattr(settings, "BEHIND_PROXY", False)

    assert client_address(_request({"X-Forwarded-For": "1.2.3.4"})) == "10.0.0.5"


@pytest.mark.unit
def test_first_forwarded_address_used_behind_proxy(monkeypatch):
    monkeypatch.setattr(settings, "BEHIND_PROXY", True)

    assert client_address(_request({"X-Forwarded-For": "1.2.3.4, 172.16.0.1"})) == "1.2.3.4"
    assert client_address(_request({"X-Real-IP": " 5.6.7.8 "})) == "5.6.7.8"
    assert client_address(_request({})) == "10.0.0.5"
