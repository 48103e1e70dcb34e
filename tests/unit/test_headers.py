"""Unit tests for outbound header construction."""

import pytest
from starlette.datastructures import Headers

from keyrelay.proxy.headers import (
    DEFAULT_USER_AGENT,
    build_outbound_headers,
    normalize_headers,
    sanitize_user_agent,
)

FORBIDDEN = {"host", "authorization", "connection", "content-length", "via"}


def test_normalize_headers_lowercases_and_collects():
    """Test repeated headers are collected in order under lowercase keys."""
    normalized = normalize_headers([("Accept", "a"), ("ACCEPT", "b"), ("X-Test", "1")])
    assert normalized == {"accept": ["a", "b"], "x-test": ["1"]}


def test_normalize_headers_accepts_starlette_headers():
    """Test Starlette header objects keep their repeated values."""
    headers = Headers(raw=[(b"cookie", b"a=1"), (b"cookie", b"b=2")])
    assert normalize_headers(headers) == {"cookie": ["a=1", "b=2"]}


@pytest.mark.parametrize("agent", [
    "curl/8.4.0",
    "node-fetch/1.0",
    "Node.js/20",
    "Apache-HttpClient/4.5.13",
    "undici NODE",
])
def test_scripted_user_agents_are_replaced(agent):
    """Test scripted client user agents are swapped for the default."""
    assert sanitize_user_agent(agent) == DEFAULT_USER_AGENT


def test_browser_user_agent_passes_through():
    """Test a regular user agent is left unchanged."""
    agent = "Mozilla/5.0 (X11; Linux x86_64) Firefox/120.0"
    assert sanitize_user_agent(agent) == agent


@pytest.mark.parametrize("agent", [None, ""])
def test_absent_user_agent_uses_default(agent):
    """Test a missing user agent is replaced by the default."""
    assert sanitize_user_agent(agent) == DEFAULT_USER_AGENT


def test_denylisted_headers_are_dropped():
    """Test identity, framing and credential headers never reach upstream."""
    inbound = {
        "Host": "proxy.local",
        "Connection": "keep-alive",
        "Content-Length": "12",
        "Authorization": "Bearer inbound",
        "X-Api-Key": "inbound-key",
        "X-Forwarded-For": "10.0.0.1",
        "x-forwarded-proto": "https",
        "Via": "1.1 lb",
        "User-Agent": "curl/8.0",
        "Accept-Encoding": "gzip, br",
        "Content-Type": "application/json",
        "anthropic-version": "2023-06-01",
    }

    outbound = build_outbound_headers(inbound, "resolved")

    assert FORBIDDEN.isdisjoint(outbound)
    assert not any(name.startswith("x-forwarded-") for name in outbound)
    assert outbound["x-api-key"] == "resolved"
    assert outbound["accept-encoding"] == "identity"
    assert outbound["user-agent"] == DEFAULT_USER_AGENT
    assert outbound["content-type"] == "application/json"
    assert outbound["anthropic-version"] == "2023-06-01"


def test_outbound_always_has_required_headers():
    """Test an empty inbound header set still yields the injected headers."""
    outbound = build_outbound_headers({}, "tok")

    assert outbound == {
        "user-agent": DEFAULT_USER_AGENT,
        "x-api-key": "tok",
        "accept-encoding": "identity",
    }


def test_repeated_headers_are_merged():
    """Test duplicate inbound headers collapse into one outbound entry."""
    inbound = [
        ("accept", "text/plain"),
        ("Accept", "application/json"),
        ("cookie", "a=1"),
        ("cookie", "b=2"),
    ]

    outbound = build_outbound_headers(inbound, "tok")

    assert outbound["accept"] == "text/plain, application/json"
    assert outbound["cookie"] == "a=1; b=2"


def test_inbound_user_agent_kept_when_not_scripted():
    """Test a browser user agent is forwarded unchanged."""
    agent = "Mozilla/5.0 (Windows NT 10.0) Chrome/120"
    outbound = build_outbound_headers({"user-agent": agent}, "tok")
    assert outbound["user-agent"] == agent
