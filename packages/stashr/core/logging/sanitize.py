"""Sanitization utilities for removing credentials from log output.

Cache service responses carry pre-authorized blob URLs whose ``sig`` query
parameter grants direct storage access, and every authenticated request carries
the runner's bearer token. Neither may reach a log line.
"""

import re
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

REDACTED = "***"

# Sensitive patterns (regex)
SENSITIVE_PATTERNS: dict[str, re.Pattern[str]] = {
    "bearer_token": re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*", re.IGNORECASE),
    # SAS signature inside any URL-ish text: sig=<value> up to the next separator
    "sas_signature": re.compile(r"(?<=[?&])sig=[^&\s\"']+", re.IGNORECASE),
}

# Sensitive keys (exact match, case-insensitive)
SENSITIVE_KEYS: set[str] = {
    "token",
    "runtime_token",
    "access_token",
    "authorization",
    "sig",
}

# Response fields that hold signed URLs
SIGNED_URL_KEYS: tuple[str, ...] = (
    "signed_upload_url",
    "signed_download_url",
    "signedUploadUrl",
    "signedDownloadUrl",
    "archiveLocation",
)


def sanitize_string(text: str) -> str:
    """Sanitize credentials from a string.

    Replaces sensitive patterns with <REDACTED:PATTERN_NAME>.

    Args:
        text: Input string

    Returns:
        Sanitized string with patterns redacted

    Example:
        >>> sanitize_string("Authorization: Bearer abc.def")
        'Authorization: <REDACTED:BEARER_TOKEN>'
    """
    for pattern_name, pattern in SENSITIVE_PATTERNS.items():
        text = pattern.sub(f"<REDACTED:{pattern_name.upper()}>", text)

    return text


def mask_signed_url(url: str) -> str:
    """Return ``url`` with the value of its ``sig`` query parameter masked.

    Unparseable input falls back to pattern-based sanitization so that a
    malformed URL still never leaks a signature.

    Args:
        url: Possibly signed URL

    Returns:
        URL safe to log
    """
    if not url:
        return url
    try:
        parts = urlsplit(url)
        query = parse_qsl(parts.query, keep_blank_values=True)
    except ValueError:
        return sanitize_string(url)

    if not any(k.lower() == "sig" for k, _ in query):
        return url

    masked = [(k, REDACTED if k.lower() == "sig" else v) for k, v in query]
    return urlunsplit(parts._replace(query=urlencode(masked, safe="*")))


def mask_secret_urls(body: dict[str, Any] | None) -> dict[str, Any]:
    """Return a copy of a response body with signed URL fields masked.

    Args:
        body: Decoded JSON response (may be None)

    Returns:
        Copy of ``body`` safe to log (empty dict for None/non-dict input)
    """
    if not isinstance(body, dict):
        return {}
    safe = dict(body)
    for key in SIGNED_URL_KEYS:
        value = safe.get(key)
        if isinstance(value, str):
            safe[key] = mask_signed_url(value)
    return safe


def sanitize_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Sanitize credentials from a dictionary.

    Recursively processes nested dictionaries and lists.
    Replaces sensitive keys with <REDACTED>.

    Args:
        data: Input dictionary

    Returns:
        New dictionary with sensitive values redacted
    """
    sanitized: dict[str, Any] = {}

    for key, value in data.items():
        if key.lower() in SENSITIVE_KEYS:
            sanitized[key] = "<REDACTED>"
            continue

        if isinstance(value, dict):
            sanitized[key] = sanitize_dict(value)
        elif isinstance(value, list):
            sanitized[key] = [
                sanitize_dict(item)
                if isinstance(item, dict)
                else sanitize_string(item)
                if isinstance(item, str)
                else item
                for item in value
            ]
        elif isinstance(value, str):
            sanitized[key] = sanitize_string(value)
        else:
            sanitized[key] = value

    return sanitized
