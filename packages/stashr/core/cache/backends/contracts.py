"""Wire models for the two cache service protocols.

REST (v1) bodies use camelCase. RPC (v2) replies are accepted with either the proto
field names or their lowerCamelCase JSON names.
"""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ArtifactCacheEntry(BaseModel):
    """Body of a REST ``GET cache`` hit."""

    model_config = ConfigDict(populate_by_name=True)

    cache_key: str | None = Field(default=None, alias="cacheKey")
    scope: str | None = None
    creation_time: str | None = Field(default=None, alias="creationTime")
    archive_location: str | None = Field(default=None, alias="archiveLocation", repr=False)


class ReserveCacheRequest(BaseModel):
    key: str
    version: str
    cache_size: int | None = Field(default=None, serialization_alias="cacheSize")


class ReserveCacheResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cache_id: int | None = Field(default=None, alias="cacheId")


class CommitCacheRequest(BaseModel):
    size: int


class GetCacheEntryDownloadURLRequest(BaseModel):
    key: str
    restore_keys: list[str] = Field(default_factory=list)
    version: str


class GetCacheEntryDownloadURLResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = False
    signed_download_url: str = Field(
        default="",
        repr=False,
        validation_alias=AliasChoices("signed_download_url", "signedDownloadUrl"),
    )
    matched_key: str = Field(
        default="", validation_alias=AliasChoices("matched_key", "matchedKey")
    )


class CreateCacheEntryRequest(BaseModel):
    key: str
    version: str


class CreateCacheEntryResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = False
    signed_upload_url: str = Field(
        default="",
        repr=False,
        validation_alias=AliasChoices("signed_upload_url", "signedUploadUrl"),
    )
    message: str = ""


class FinalizeCacheEntryUploadRequest(BaseModel):
    key: str
    version: str
    # int64 travels as a string in proto JSON
    size_bytes: str


class FinalizeCacheEntryUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool = False
    entry_id: int = Field(default=0, validation_alias=AliasChoices("entry_id", "entryId"))
    message: str = ""
