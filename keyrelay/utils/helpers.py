"""Utility functions and helpers."""

import re
from typing import Iterable, Optional, Union

SIZE_UNITS = {
    "b": 1,
    "kb": 1024,
    "mb": 1024 ** 2,
    "gb": 1024 ** 3,
}

SENSITIVE_HEADERS = {"authorization", "proxy-authorization", "x-api-key", "cookie"}

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([kmg]?b)?\s*$", re.IGNORECASE)


def parse_size(value: Union[str, int, float]) -> int:
    """Parse a human-readable size into a byte count.

    Args:
        value: Integer byte count or string such as "25mb", "512kb", "1024"

    Returns:
        Size in bytes

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid size: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Size cannot be negative: {value!r}")
        return int(value)

    match = _SIZE_PATTERN.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")

    number, unit = match.groups()
    return int(float(number) * SIZE_UNITS[(unit or "b").lower()])


def first_header_value(value: Union[str, Iterable[str], None]) -> Optional[str]:
    """Return the first non-empty value of a possibly repeated header.

    Args:
        value: A single header value, a list of values, or None

    Returns:
        The first value, or None if there is none
    """
    if value is None or isinstance(value, str):
        return value
    for item in value:
        if item:
            return item
    return None


def mask_secret(secret: Optional[str], visible: int = 4) -> str:
    """Mask a secret for display, keeping only its last few characters.

    Args:
        secret: Secret value
        visible: Number of trailing characters to keep

    Returns:
        Masked string (e.g., "****3f9a")
    """
    if not secret:
        return ""
    if len(secret) <= visible * 2:
        return "*" * len(secret)
    return "*" * 4 + secret[-visible:]


def redact_headers(headers: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    """Redact credential-bearing headers for diagnostic logging.

    Args:
        headers: Header name/value pairs

    Returns:
        Pairs with sensitive values replaced by a marker
    """
    return [
        (name, "[redacted]" if name.lower() in SENSITIVE_HEADERS else value)
        for name, value in headers
    ]
