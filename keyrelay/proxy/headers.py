"""Outbound header construction.

Inbound headers are copied through except for hop-by-hop, framing, identity
and credential headers, which are dropped and recomputed.
"""

from collections.abc import Iterable, Mapping
from typing import Union

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
)

# User agents containing any of these are replaced with DEFAULT_USER_AGENT
SCRIPTED_CLIENT_MARKERS = ("node", "curl", "httpclient")

STRIP_HEADERS = {
    "host",
    "connection",
    "content-length",
    "authorization",
    "x-api-key",
    "via",
    "user-agent",
}
STRIP_PREFIXES = ("x-forwarded-",)

HeaderSource = Union[Mapping, Iterable[tuple[str, str]]]


def normalize_headers(headers: HeaderSource) -> dict[str, list[str]]:
    """Lowercase header names and collect repeated values in order.

    Accepts Starlette/httpx header objects, plain mappings (values may be a
    string or a list of strings) and sequences of name/value pairs.
    """
    if hasattr(headers, "multi_items"):
        pairs = headers.multi_items()
    elif isinstance(headers, Mapping):
        pairs = []
        for name, value in headers.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                pairs.extend((name, v) for v in value)
            else:
                pairs.append((name, value))
    else:
        pairs = headers

    normalized: dict[str, list[str]] = {}
    for name, value in pairs:
        normalized.setdefault(name.lower(), []).append(value)
    return normalized


def is_stripped(name: str) -> bool:
    """Whether an inbound header must not be copied to the upstream request."""
    lowered = name.lower()
    return lowered in STRIP_HEADERS or lowered.startswith(STRIP_PREFIXES)


def sanitize_user_agent(user_agent: Union[str, None]) -> str:
    """Return the inbound user agent, or the default if it looks scripted."""
    if not user_agent:
        return DEFAULT_USER_AGENT
    lowered = user_agent.lower()
    if any(marker in lowered for marker in SCRIPTED_CLIENT_MARKERS):
        return DEFAULT_USER_AGENT
    return user_agent


def _merge_values(name: str, values: list[str]) -> str:
    separator = "; " if name == "cookie" else ", "
    return separator.join(values)


def build_outbound_headers(headers: HeaderSource, credential: str) -> dict[str, str]:
    """Build the upstream request headers.

    Args:
        headers: Inbound headers
        credential: Resolved token, sent as ``x-api-key``

    Returns:
        Header mapping with one value per lowercase name
    """
    normalized = normalize_headers(headers)

    outbound = {
        name: _merge_values(name, values)
        for name, values in normalized.items()
        if not is_stripped(name)
    }

    user_agent = normalized.get("user-agent")
    outbound["user-agent"] = sanitize_user_agent(user_agent[0] if user_agent else None)
    outbound["x-api-key"] = credential
    outbound["accept-encoding"] = "identity"
    return outbound
