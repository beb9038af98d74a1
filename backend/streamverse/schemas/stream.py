from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class InfoOut(BaseModel):
    """Everything a player needs before paying for the first chunk."""

    model_config = ConfigDict(populate_by_name=True, serialize_by_alias=True)

    asset: str
    title: str
    duration: float
    size: int
    chunk_duration: float = Field(serialization_alias="chunkDuration")
    total_chunks: int = Field(serialization_alias="totalChunks")
    # atomic units of ``asset_token``
    price_per_chunk: int = Field(serialization_alias="pricePerChunk")
    total_price: int = Field(serialization_alias="totalPrice")
    network: str
    asset_token: str
    pay_to: str = Field(serialization_alias="payTo")
    mime: str | None = None
