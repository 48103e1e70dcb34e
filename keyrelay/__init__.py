"""keyrelay - Credential-injecting HTTP forwarding proxy."""

__version__ = "0.1.0"

from keyrelay.config.settings import ConfigurationError, Settings
from keyrelay.proxy.credentials import (
    Credential,
    MissingCredentialError,
    resolve_credential,
)
from keyrelay.proxy.headers import DEFAULT_USER_AGENT, build_outbound_headers
from keyrelay.proxy.forwarder import DispatchError, Forwarder, PayloadTooLargeError
from keyrelay.proxy.relay import MidStreamError, RelayResponse
from keyrelay.proxy.app import create_app

__all__ = [
    "Settings",
    "ConfigurationError",
    "Credential",
    "MissingCredentialError",
    "resolve_credential",
    "DEFAULT_USER_AGENT",
    "build_outbound_headers",
    "Forwarder",
    "DispatchError",
    "PayloadTooLargeError",
    "MidStreamError",
    "RelayResponse",
    "create_app",
]
