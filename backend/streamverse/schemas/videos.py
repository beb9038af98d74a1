from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3

ADDR_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
CID_RE = re.compile(r"^[A-Za-z0-9]{8,128}$")
TAG_RE = re.compile(r"^[\w\- ]{1,32}$")
MAX_TAGS = 20


def _clean_tags(v: list[str] | None) -> list[str] | None:
    if v is None:
        return None
    if len(v) > MAX_TAGS:
        raise ValueError("too_many_tags")
    seen: set[str] = set()
    out: list[str] = []
    for t in v:
        if not isinstance(t, str):
            raise ValueError("bad_tag")
        t = t.strip()
        if not TAG_RE.match(t):
            raise ValueError("bad_tag")
        if t.lower() not in seen:
            seen.add(t.lower())
            out.append(t)
    return out


class VideoCreateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    public_address: str = Field(alias="publicAddress")
    title: str = Field(min_length=1, max_length=256)
    description: str | None = Field(default=None, max_length=10_000)
    cid: str
    tags: list[str] = Field(default_factory=list)
    size_bytes: int = Field(alias="sizeBytes", gt=0, le=2**63 - 1)
    duration_seconds: float = Field(alias="durationSeconds", gt=0, allow_inf_nan=False)
    chunk_duration_seconds: float | None = Field(
        default=None, alias="chunkDurationSeconds", gt=0, le=600, allow_inf_nan=False
    )
    mime: str | None = Field(default=None, max_length=128)

    @field_validator("public_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not isinstance(v, str) or not ADDR_RE.match(v):
            raise ValueError("bad_address")
        return Web3.to_checksum_address(v)

    @field_validator("cid")
    @classmethod
    def validate_cid(cls, v: str) -> str:
        v = (v or "").strip()
        if not CID_RE.match(v):
            raise ValueError("bad_cid")
        return v

    @field_validator("title")
    @classmethod
    def strip_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("title_required")
        return v

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str]) -> list[str]:
        return _clean_tags(v) or []


class VideoUpdateIn(BaseModel):
    """Only descriptive fields are mutable; the asset itself is content-addressed."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = Field(default=None, min_length=1, max_length=256)
    description: str | None = Field(default=None, max_length=10_000)
    tags: list[str] | None = None

    @field_validator("tags")
    @classmethod
    def validate_tags(cls, v: list[str] | None) -> list[str] | None:
        return _clean_tags(v)


class VideoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True, serialize_by_alias=True)

    id: int
    public_address: str = Field(serialization_alias="publicAddress")
    title: str
    description: str | None = None
    cid: str
    tags: list[str] = Field(default_factory=list)
    size_bytes: int = Field(serialization_alias="sizeBytes")
    duration_seconds: float = Field(serialization_alias="durationSeconds")
    chunk_duration_seconds: float = Field(serialization_alias="chunkDurationSeconds")
    mime: str | None = None
    created_at: datetime | None = Field(default=None, serialization_alias="createdAt")
    updated_at: datetime | None = Field(default=None, serialization_alias="updatedAt")


class VideoListOut(BaseModel):
    items: list[VideoOut]
    count: int
    total: int


class VideoStatsOut(BaseModel):
    totalVideos: int
    uniqueCreators: int
    recentVideos: int
