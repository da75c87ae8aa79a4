"""Models for the cache protocol.

Keys, fingerprint inputs, service answers and the tagged results the
backends hand to the orchestrator.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from stashr.core.cache.constants import MAX_KEY_COUNT, MAX_KEY_LENGTH, CompressionMethod
from stashr.core.cache.errors import ValidationError


def check_key(key: str) -> None:
    """Validate a single cache key.

    Raises:
        ValidationError: If the key is too long or contains a comma
    """
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(
            f"Key Validation Error: {key} cannot be larger than {MAX_KEY_LENGTH} characters."
        )
    if "," in key:
        raise ValidationError(f"Key Validation Error: {key} cannot contain commas.")


class CacheKeys(BaseModel):
    """Primary key plus ordered fallback prefixes.

    Use ``CacheKeys.build`` to construct; it enforces the key rules.
    """

    model_config = {"frozen": True}

    primary: str
    restore_keys: tuple[str, ...] = ()

    @classmethod
    def build(
        cls, primary: str, restore_keys: list[str] | tuple[str, ...] | None = None
    ) -> CacheKeys:
        """Validate and build the key list.

        Raises:
            ValidationError: More than 10 keys, a key over 512 characters, or a comma in a key
        """
        keys = cls(primary=primary, restore_keys=tuple(restore_keys or ()))
        all_keys = keys.all_keys
        if len(all_keys) > MAX_KEY_COUNT:
            raise ValidationError(
                f"Key Validation Error: Keys are limited to a maximum of {MAX_KEY_COUNT}."
            )
        for key in all_keys:
            check_key(key)
        return keys

    @property
    def all_keys(self) -> list[str]:
        return [self.primary, *self.restore_keys]


class CacheOptions(BaseModel):
    """Fingerprint inputs besides the path list."""

    model_config = {"frozen": True}

    compression_method: CompressionMethod | None = None
    enable_cross_os_archive: bool = False


class CacheEntry(BaseModel):
    """A matched cache entry as reported by the service.

    Exactly one of ``archive_location`` (v1) or ``signed_download_url`` (v2) is set.
    """

    model_config = {"frozen": True}

    matched_key: str
    archive_location: str | None = Field(default=None, repr=False)
    signed_download_url: str | None = Field(default=None, repr=False)
    scope: str | None = None
    creation_time: str | None = None

    @property
    def download_url(self) -> str:
        url = self.archive_location or self.signed_download_url
        if not url:
            raise ValueError(f"Cache entry {self.matched_key!r} has no download location")
        return url


class UploadTicket(BaseModel):
    """Reservation handle returned by ``reserve``.

    ``cache_id`` is set for v1, ``signed_upload_url`` for v2.
    """

    model_config = {"frozen": True}

    key: str
    version: str
    cache_id: int | None = None
    signed_upload_url: str | None = Field(default=None, repr=False)


class ArchiveFile(BaseModel):
    model_config = {"frozen": True}

    path: Path
    compression_method: CompressionMethod
    size_bytes: int = Field(ge=0)


class Reserved(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["reserved"] = "reserved"
    ticket: UploadTicket


class Conflict(BaseModel):
    """Another job holds (or already committed) the key."""

    model_config = {"frozen": True}

    kind: Literal["conflict"] = "conflict"
    reason: str


class Rejected(BaseModel):
    """The service refused the reservation (size cap, quota)."""

    model_config = {"frozen": True}

    kind: Literal["rejected"] = "rejected"
    reason: str


ReserveResult = Reserved | Conflict | Rejected


class Finalized(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["finalized"] = "finalized"
    entry_id: int


class FinalizeFailed(BaseModel):
    model_config = {"frozen": True}

    kind: Literal["finalize_failed"] = "finalize_failed"
    reason: str


FinalizeResult = Finalized | FinalizeFailed
