"""Log sanitization for stashr.

Removes bearer tokens and blob SAS signatures before text reaches a handler.
"""

from .sanitize import mask_secret_urls, mask_signed_url, sanitize_dict, sanitize_string

__all__ = [
    "mask_signed_url",
    "mask_secret_urls",
    "sanitize_dict",
    "sanitize_string",
]
