"""Resolution of the credential injected into upstream requests.

Order, first non-empty wins: the ``x-api-key`` header, a ``Bearer`` token in
the ``authorization`` header, then the configured fallback token.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

from keyrelay.proxy.headers import HeaderSource, normalize_headers
from keyrelay.utils.helpers import first_header_value, mask_secret

_BEARER_PATTERN = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE | re.DOTALL)

SOURCE_API_KEY = "x-api-key"
SOURCE_AUTHORIZATION = "authorization"
SOURCE_FALLBACK = "fallback"


class MissingCredentialError(Exception):
    """Raised when no credential can be derived for a request."""

    def __init__(self, message: str = "Missing Anthropic API token."):
        super().__init__(message)


@dataclass(frozen=True)
class Credential:
    """A resolved bearer credential and where it came from."""
    token: str = field(repr=False)
    source: str

    def __repr__(self) -> str:
        return f"Credential(token={mask_secret(self.token)!r}, source={self.source!r})"


def _bearer_token(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    match = _BEARER_PATTERN.match(value)
    if not match:
        return None
    return match.group(1).strip() or None


def resolve_credential(headers: HeaderSource, fallback: Optional[str] = None) -> Optional[Credential]:
    """Derive the outbound credential for a request.

    Args:
        headers: Inbound headers (mapping, pair list or Starlette headers)
        fallback: Process-wide fallback token

    Returns:
        Credential, or None if nothing usable was found
    """
    normalized = normalize_headers(headers)

    api_key = first_header_value(normalized.get("x-api-key"))
    if api_key and api_key.strip():
        return Credential(api_key.strip(), SOURCE_API_KEY)

    token = _bearer_token(first_header_value(normalized.get("authorization")))
    if token:
        return Credential(token, SOURCE_AUTHORIZATION)

    if fallback:
        return Credential(fallback, SOURCE_FALLBACK)
    return None


def require_credential(headers: HeaderSource, fallback: Optional[str] = None) -> Credential:
    """Like resolve_credential, but raise MissingCredentialError on absence."""
    credential = resolve_credential(headers, fallback)
    if credential is None:
        raise MissingCredentialError()
    return credential
